"""Turn orchestrator — one request/response cycle against the Completion Service.

Request flow:
  1. Render the system preamble: static instructions + game state snapshot.
  2. Input items = [system item] + every history item, oldest chunk first.
  3. Attempt 0 sends the input as-is.
  4. If no narrative text comes back, attempt 1 sends the same input plus a
     "visible text only" nudge.
  5. Transport failures abort immediately; no retry.

Text extraction reads assistant `output_text` parts, then refusals, then the
top-level `output_text` convenience field. A one-line-per-item diagnostic
summary is built alongside for verbose display.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from pydantic import ValidationError

from textquest.config import RETRY_NUDGE, SYSTEM_PROMPT, Settings
from textquest.history import HistoryChunk, HistoryItem
from textquest.llm import CompletionClient, CompletionError, EmptyOutputError, TransportError
from textquest.models import GameState, ResponsePayload, TurnResult
from textquest.prompts import build_system_preamble

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 2
REFUSAL_PREFIX = "Refusal: "


class TurnStatus(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    COMPLETE = "complete"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Request building
# ---------------------------------------------------------------------------

def build_request_body(
    model: str, input_items: list[HistoryItem], max_output_tokens: int
) -> dict[str, Any]:
    return {
        "model": model,
        "input": input_items,
        "max_output_tokens": max_output_tokens,
        "text": {"format": {"type": "text"}},
        "reasoning": {"effort": "low"},
        "include": ["reasoning.encrypted_content"],
    }


def build_input_items(
    history: list[HistoryChunk], state: GameState, instructions: str = SYSTEM_PROMPT
) -> list[HistoryItem]:
    """System item first, then history items in order."""
    items: list[HistoryItem] = [
        {"role": "system", "content": build_system_preamble(instructions, state)}
    ]
    for chunk in history:
        items.extend(chunk)
    return items


# ---------------------------------------------------------------------------
# Response extraction
# ---------------------------------------------------------------------------

def _usable(text: str | None) -> str | None:
    if text is None or not text.strip():
        return None
    return text


def extract_output(data: dict[str, Any]) -> tuple[str | None, list[dict[str, Any]], str]:
    """Return (text or None, verbatim output items, diagnostic summary)."""
    try:
        payload = ResponsePayload.model_validate(data)
    except ValidationError as e:
        raise TransportError(f"Unexpected response format: {e.error_count()} invalid field(s)") from e

    if payload.output is None:
        return _usable(payload.output_text), [], "output: <missing>"

    lines: list[str] = []
    if payload.output_text is not None:
        lines.append(f"output_text:len={len(payload.output_text)}")

    texts: list[str] = []
    refusals: list[str] = []
    for item in payload.output:
        parts = item.parts()
        part_types = [p.type for p in parts if p.type]
        refusals.extend(p.refusal for p in parts if p.type == "refusal" and p.refusal is not None)
        content = ",".join(part_types) if part_types else "[]"
        lines.append(f"output: type={item.type or 'unknown'} role={item.role or '-'} content={content}")

        if item.type != "message" or item.role != "assistant":
            continue
        texts.extend(p.text for p in parts if p.type == "output_text" and p.text is not None)

    output_items = list(data["output"])
    summary = "\n".join(lines)

    text = _usable("".join(texts))
    if text is None and refusals:
        text = REFUSAL_PREFIX + "\n".join(refusals)
    if text is None:
        text = _usable(payload.output_text)
    return text, output_items, summary


# ---------------------------------------------------------------------------
# TurnOrchestrator
# ---------------------------------------------------------------------------

class TurnOrchestrator:
    """Runs turn requests with the retry-with-nudge policy.

    `status` moves IDLE -> PENDING -> COMPLETE | FAILED on every advance().
    """

    def __init__(
        self,
        client: CompletionClient,
        settings: Settings | None = None,
        instructions: str = SYSTEM_PROMPT,
    ) -> None:
        self._client = client
        self._settings = settings or Settings()
        self._instructions = instructions
        self.status = TurnStatus.IDLE

    async def advance(self, history: list[HistoryChunk], state: GameState) -> TurnResult:
        """Execute one turn and return the narrative text plus raw output items."""
        self.status = TurnStatus.PENDING
        try:
            result = await self._attempt_all(history, state)
        except CompletionError:
            self.status = TurnStatus.FAILED
            raise
        self.status = TurnStatus.COMPLETE
        return result

    async def _attempt_all(self, history: list[HistoryChunk], state: GameState) -> TurnResult:
        base_items = build_input_items(history, state, self._instructions)
        retry_items = base_items + [{"role": "user", "content": RETRY_NUDGE}]

        last_summary = ""
        for attempt in range(MAX_ATTEMPTS):
            items = base_items if attempt == 0 else retry_items
            body = build_request_body(self._settings.model, items, self._settings.max_output_tokens)
            data = await self._client(body)

            text, output_items, last_summary = extract_output(data)
            if text is not None:
                logger.debug("turn text extracted attempt=%d len=%d", attempt, len(text))
                return TurnResult(
                    text=text,
                    output_items=output_items,
                    diagnostics=last_summary,
                    attempts=attempt + 1,
                    refused=text.startswith(REFUSAL_PREFIX),
                )
            logger.warning("No output text on attempt %d: %s", attempt, last_summary.replace("\n", " | "))

        message = "No output text found in response."
        if self._settings.verbose:
            message = f"{message} Output summary: {last_summary}"
        raise EmptyOutputError(message)
