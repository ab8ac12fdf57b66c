"""Handlebars prompt rendering for turn and scene requests.

Two templates:
  STATE_TEMPLATE  — system preamble: static instructions + game state snapshot
  SCENE_TEMPLATE  — context text for the scene renderer

Values are inserted with triple-stash so player-entered text is never
HTML-escaped.
"""

from collections.abc import Callable
from typing import Any

import pybars

from textquest.models import NARRATOR, GameState

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}

STATE_TEMPLATE = (
    "{{{instructions}}}\n"
    "Current turn: {{{turn}}}\n"
    "Location: {{{location}}}\n"
    "Inventory: {{{inventory}}}\n"
    "Flags: {{{flags}}}\n"
    "Current speaker: {{{speaker}}}"
)

SCENE_TEMPLATE = (
    "Turn: {{{turn}}}\n"
    "Location: {{{location}}}\n"
    "Inventory: {{{inventory}}}\n"
    "Flags: {{{flags}}}\n"
    "Current speaker: {{{speaker}}}"
    "{{#if recent}}\n\nRecent narration/dialogue:\n{{{recent}}}{{/if}}"
)


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


def state_context(state: GameState) -> dict[str, str]:
    """Flatten game state into display strings ("Empty"/"None"/"Narrator" when unset)."""
    return {
        "turn": str(state.turn),
        "location": state.location,
        "inventory": ", ".join(state.inventory) if state.inventory else "Empty",
        "flags": ", ".join(state.flags) if state.flags else "None",
        "speaker": state.active_speaker or NARRATOR,
    }


def build_system_preamble(instructions: str, state: GameState) -> str:
    ctx = state_context(state)
    ctx["instructions"] = instructions
    return render_prompt(STATE_TEMPLATE, ctx)


def build_scene_context(state: GameState, recent: str | None = None) -> str:
    ctx: dict[str, Any] = dict(state_context(state))
    ctx["recent"] = recent or ""
    return render_prompt(SCENE_TEMPLATE, ctx)
