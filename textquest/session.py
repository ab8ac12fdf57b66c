"""Game session — owns all mutable state and drives the turn pipeline.

The session is driven by a control loop that calls poll() on every tick.
poll() never waits on the network: turn and scene requests run as
background asyncio tasks, and poll() only checks whether they are done.

Per player input:
  1. submit() trims the input, handles /commands locally, clears the active
     speaker on an exit cue, logs the input and appends the user chunk.
  2. poll() starts the turn task with snapshots of state and history.
  3. When the task is done, poll() parses the narrative into log entries,
     applies the active-speaker transition, appends the response chunk,
     advances the turn counter, and starts a scene task.

At most one turn task exists at a time (`busy`). There is no cancellation:
reset() detaches outstanding tasks, which run to completion and whose
results are dropped.
"""

from __future__ import annotations

import asyncio
import logging
import time

from textquest.config import SCENE_PLACEHOLDER, Settings
from textquest.dialogue import fallback_entries, is_exit_cue, next_active_speaker, parse_dialogue
from textquest.history import ConversationStore
from textquest.llm import CompletionClient, CompletionError, HttpCompletionClient
from textquest.models import NARRATOR, GameState, LogEntry, LogKind, ParsedEntry, TurnResult
from textquest.pipeline import SceneOrchestrator, TurnOrchestrator
from textquest.prompts import build_scene_context

logger = logging.getLogger(__name__)

WELCOME = "Welcome! Describe what you do to begin."
NEW_GAME = "New game. Describe what you do to begin."
HELP = (
    "Commands: /new, /quit, /set location <name>, /add item <name>, "
    "/remove item <name>, /flag <name>, /unflag <name>, /scene, /again."
)


class Session:
    def __init__(
        self,
        client: CompletionClient,
        settings: Settings | None = None,
        scene_client: CompletionClient | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.state = GameState()
        self.history = ConversationStore(self.settings.max_history_items)
        self.log: list[LogEntry] = []
        self.busy = False
        self.status = "Ready"
        self.scene_text = SCENE_PLACEHOLDER
        self.last_sent_input: str | None = None
        self.thinking_started: float | None = None

        self._turn = TurnOrchestrator(client, self.settings)
        self._scene = SceneOrchestrator(scene_client or client, self.settings)
        self._pending_input: str | None = None
        self._turn_task: asyncio.Task[TurnResult] | None = None
        self._scene_task: asyncio.Task[str] | None = None
        self._detached: set[asyncio.Task] = set()

        self.push_log("system", WELCOME)

    @classmethod
    def connect(cls, api_key: str, settings: Settings | None = None) -> Session:
        """Session backed by the HTTP client for the resolved API key."""
        settings = settings or Settings()
        client = HttpCompletionClient(api_key, settings.api_url, settings.timeout)
        return cls(client, settings)

    # ------------------------------------------------------------------
    # Transcript
    # ------------------------------------------------------------------

    def push_log(self, kind: LogKind, text: str, speaker: str | None = None) -> LogEntry:
        entry = LogEntry(kind=kind, text=text, speaker=speaker)
        self.log.append(entry)
        return entry

    def recent_narration(self) -> str | None:
        """Most recent non-empty assistant entry."""
        for entry in reversed(self.log):
            if entry.kind == "assistant" and entry.text.strip():
                return entry.text
        return None

    def recall_last_input(self) -> str | None:
        return self.last_sent_input

    def thinking_elapsed(self) -> float | None:
        """Seconds since the running turn started, or None when idle."""
        if self.thinking_started is None:
            return None
        return time.monotonic() - self.thinking_started

    def status_line(self) -> str:
        elapsed = self.thinking_elapsed()
        if self.busy and elapsed is not None:
            return f"Thinking... ({elapsed:.0f}s)"
        return self.status

    # ------------------------------------------------------------------
    # Player input
    # ------------------------------------------------------------------

    def submit(self, raw_input: str) -> bool:
        """Accept one line of player input. Returns True when the player quits."""
        text = raw_input.strip()
        if not text:
            return False
        if text.startswith("/"):
            return self.handle_command(text)

        if self.busy or self._pending_input is not None:
            self.push_log("system", "Still thinking about the last turn. Please wait.")
            return False

        if self.state.active_speaker and is_exit_cue(text):
            logger.info("Dialogue with %s ended by player", self.state.active_speaker)
            self.state.active_speaker = None

        self.push_log("user", text)
        self.history.append_user_message(text)
        self.last_sent_input = text
        self._pending_input = text
        return False

    def handle_command(self, command: str) -> bool:
        """Apply a /command locally, bypassing the Completion Service."""
        if command in ("/quit", "/exit"):
            return True
        if command == "/new":
            self.reset()
        elif command == "/help":
            self.push_log("system", HELP)
        elif command == "/scene":
            self.request_scene()
        elif command == "/again":
            last = self.recall_last_input()
            if last is None:
                self.push_log("system", "Nothing to repeat yet.")
            else:
                self.submit(last)
        elif command.startswith("/set location "):
            self._set_location(command.removeprefix("/set location ").strip())
        elif command.startswith("/add item "):
            self._add_item(command.removeprefix("/add item ").strip())
        elif command.startswith("/remove item "):
            self._remove_item(command.removeprefix("/remove item ").strip())
        elif command.startswith("/flag "):
            self._set_flag(command.removeprefix("/flag ").strip())
        elif command.startswith("/unflag "):
            self._clear_flag(command.removeprefix("/unflag ").strip())
        else:
            self.push_log("system", "Unknown command. Try /help.")
        return False

    def _set_location(self, location: str) -> None:
        if not location:
            self.push_log("system", "Usage: /set location <name>")
            return
        self.state.location = location
        self.push_log("system", f"Location set to: {location}")

    def _add_item(self, item: str) -> None:
        if not item:
            self.push_log("system", "Usage: /add item <name>")
            return
        self.state.add_item(item)
        self.push_log("system", f"Added item: {item}")

    def _remove_item(self, item: str) -> None:
        if not item:
            self.push_log("system", "Usage: /remove item <name>")
        elif self.state.remove_item(item):
            self.push_log("system", f"Removed item: {item}")
        else:
            self.push_log("system", f"Item not found: {item}")

    def _set_flag(self, flag: str) -> None:
        if not flag:
            self.push_log("system", "Usage: /flag <name>")
        elif self.state.set_flag(flag):
            self.push_log("system", f"Flag set: {flag}")
        else:
            self.push_log("system", f"Flag already set: {flag}")

    def _clear_flag(self, flag: str) -> None:
        if not flag:
            self.push_log("system", "Usage: /unflag <name>")
        elif self.state.clear_flag(flag):
            self.push_log("system", f"Flag cleared: {flag}")
        else:
            self.push_log("system", f"Flag not found: {flag}")

    # ------------------------------------------------------------------
    # Control loop
    # ------------------------------------------------------------------

    def poll(self) -> None:
        """Collect finished workers, then start a pending turn if idle.

        Must be called from inside a running event loop.
        """
        self._collect_turn()
        self._collect_scene()
        if not self.busy and self._pending_input is not None:
            self._start_turn()

    async def settle(self) -> None:
        """Wait until no worker is outstanding, polling as each one finishes."""
        while True:
            self.poll()
            tasks = [t for t in (self._turn_task, self._scene_task) if t is not None]
            if not tasks:
                break
            await asyncio.wait(tasks)
        if self._detached:
            await asyncio.gather(*self._detached, return_exceptions=True)

    def _start_turn(self) -> None:
        self._pending_input = None
        history = self.history.snapshot()
        state = self.state.snapshot()
        self._turn_task = asyncio.create_task(self._turn.advance(history, state))
        self.busy = True
        self.status = "Thinking..."
        self.thinking_started = time.monotonic()
        logger.debug("turn started turn=%d history_items=%d", state.turn, self.history.item_count())

    def _collect_turn(self) -> None:
        task = self._turn_task
        if task is None or not task.done():
            return
        self._turn_task = None
        logger.debug("turn finished after %.1fs", self.thinking_elapsed() or 0.0)
        self.busy = False
        self.thinking_started = None

        if task.cancelled():
            self._fail_turn("Response channel disconnected.")
            return
        exc = task.exception()
        if isinstance(exc, CompletionError):
            logger.warning("Turn failed: %s", exc)
            self._fail_turn(str(exc))
            return
        if exc is not None:
            logger.error("Turn worker crashed", exc_info=exc)
            self._fail_turn(f"Turn worker failed: {exc}")
            return
        self.apply_turn_result(task.result())

    def _fail_turn(self, message: str) -> None:
        self.push_log("error", message)
        self.status = "Error"

    def apply_turn_result(self, result: TurnResult) -> None:
        """Turn a successful response into log entries and state changes."""
        if result.refused:
            # shown as-is; a refusal never opens a dialogue
            entries = [ParsedEntry(speaker=NARRATOR, text=result.text)]
            speaker = None
        else:
            parsed = parse_dialogue(result.text)
            if parsed.entries:
                entries = parsed.entries
                speaker = next_active_speaker(parsed)
            else:
                logger.warning("No speaker blocks in narrative; using fallback")
                entries = fallback_entries(result.text)
                speaker = None

        for entry in entries:
            self.push_log("assistant", entry.text, speaker=entry.speaker)
        if speaker != self.state.active_speaker:
            logger.info("Active speaker %s -> %s", self.state.active_speaker, speaker)
        self.state.active_speaker = speaker

        self.history.append_chunk(result.output_items)
        if self.settings.verbose and result.diagnostics:
            self.push_log("system", result.diagnostics)
        self.state.turn += 1
        self.status = "Ready"

        if self.settings.scene_enabled:
            self.request_scene()

    # ------------------------------------------------------------------
    # Scene
    # ------------------------------------------------------------------

    def scene_context(self) -> str:
        return build_scene_context(self.state, self.recent_narration())

    def request_scene(self) -> None:
        """Start a scene task; a still-running previous one is detached."""
        if self._scene_task is not None:
            self._detach(self._scene_task)
        self._scene_task = asyncio.create_task(self._scene.request(self.scene_context()))

    def _collect_scene(self) -> None:
        task = self._scene_task
        if task is None or not task.done():
            return
        self._scene_task = None

        exc: BaseException | None
        if task.cancelled():
            exc = CompletionError("Scene worker cancelled")
        else:
            exc = task.exception()
        if exc is not None:
            logger.warning("Scene generation failed: %s", exc)
            self.scene_text = SCENE_PLACEHOLDER
            if self.settings.verbose:
                self.push_log("system", f"Scene unavailable: {exc}")
            return
        self.scene_text = task.result()

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------

    def _detach(self, task: asyncio.Task) -> None:
        self._detached.add(task)
        task.add_done_callback(self._discard_detached)

    def _discard_detached(self, task: asyncio.Task) -> None:
        self._detached.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Dropped failure of detached worker: %s", task.exception())

    def reset(self) -> None:
        """Start a new game. Outstanding workers are detached, not cancelled."""
        for task in (self._turn_task, self._scene_task):
            if task is not None:
                self._detach(task)
        self._turn_task = None
        self._scene_task = None
        self._pending_input = None

        self.state = GameState()
        self.history.clear()
        self.log.clear()
        self.busy = False
        self.status = "Ready"
        self.scene_text = SCENE_PLACEHOLDER
        self.last_sent_input = None
        self.thinking_started = None
        self.push_log("system", NEW_GAME)
