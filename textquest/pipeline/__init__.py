"""Completion Service pipeline.

Two request flows share one client:
  turn   — system preamble + history, retried once with a visible-text nudge
  scene  — scene instructions + state context, single attempt

advance_turn() and generate_scene() wrap the orchestrators for one-off calls.
"""

from textquest.config import Settings
from textquest.history import HistoryChunk
from textquest.llm import CompletionClient
from textquest.models import GameState, TurnResult

from .scene import SceneOrchestrator, normalize_scene_text  # noqa: F401
from .turn import (  # noqa: F401
    TurnOrchestrator,
    TurnStatus,
    build_input_items,
    build_request_body,
    extract_output,
)


async def advance_turn(
    client: CompletionClient,
    history: list[HistoryChunk],
    state: GameState,
    settings: Settings | None = None,
) -> TurnResult:
    return await TurnOrchestrator(client, settings).advance(history, state)


async def generate_scene(
    client: CompletionClient, context_text: str, settings: Settings | None = None
) -> str:
    return await SceneOrchestrator(client, settings).request(context_text)
