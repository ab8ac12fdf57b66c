"""Scene orchestrator — single-attempt ASCII scene rendering.

Triggered by the session after a successful turn. No retry and no history:
the request carries only the scene instructions and a context string built
from the latest game state. Failures are reported to the caller, which
swaps in a placeholder.
"""

from __future__ import annotations

import logging

from textquest.config import SCENE_PLACEHOLDER, SCENE_PROMPT, Settings
from textquest.llm import CompletionClient, EmptyOutputError

from .turn import build_request_body, extract_output

logger = logging.getLogger(__name__)


def normalize_scene_text(text: str) -> str:
    """Unify line endings, drop fences and surrounding blank lines.

    Interior indentation is kept; it is part of the drawing.
    """
    lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    lines = [line.rstrip() for line in lines]
    if lines and lines[0].strip().startswith("```"):
        lines = lines[1:]
    if lines and lines[-1].strip().startswith("```"):
        lines = lines[:-1]
    while lines and not lines[0].strip():
        lines.pop(0)
    while lines and not lines[-1].strip():
        lines.pop()
    if not lines:
        return SCENE_PLACEHOLDER
    return "\n".join(lines)


class SceneOrchestrator:
    def __init__(
        self,
        client: CompletionClient,
        settings: Settings | None = None,
        instructions: str = SCENE_PROMPT,
    ) -> None:
        self._client = client
        self._settings = settings or Settings()
        self._instructions = instructions

    async def request(self, context_text: str) -> str:
        """Request one scene rendering and return the normalized text."""
        items = [
            {"role": "system", "content": self._instructions},
            {"role": "user", "content": context_text},
        ]
        body = build_request_body(
            self._settings.scene_model, items, self._settings.scene_max_output_tokens
        )
        data = await self._client(body)
        text, _, summary = extract_output(data)
        if text is None:
            message = "No scene text found in response."
            if self._settings.verbose:
                message = f"{message} Output summary: {summary}"
            raise EmptyOutputError(message)
        logger.debug("scene text extracted len=%d", len(text))
        return normalize_scene_text(text)
