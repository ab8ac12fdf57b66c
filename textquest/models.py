"""Core domain models.

Game state, transcript entries, parser output, and the Completion Service
response schema. Pydantic is used for validation at every data boundary.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

LogKind = Literal["user", "assistant", "system", "error"]

NARRATOR = "Narrator"


class GameState(BaseModel):
    """Mutable game state owned by the session.

    `active_speaker` is None while the Narrator has control.
    """

    turn: int = 0
    location: str = "Unknown"
    inventory: list[str] = Field(default_factory=list)  # duplicates allowed
    flags: list[str] = Field(default_factory=list)  # duplicates rejected
    active_speaker: str | None = None

    def snapshot(self) -> GameState:
        """Deep copy handed to background workers."""
        return self.model_copy(deep=True)

    def add_item(self, item: str) -> None:
        self.inventory.append(item)

    def remove_item(self, item: str) -> bool:
        """Remove the first matching item. Returns False if absent."""
        try:
            self.inventory.remove(item)
        except ValueError:
            return False
        return True

    def set_flag(self, flag: str) -> bool:
        """Set a flag. Returns False if it was already set."""
        if flag in self.flags:
            return False
        self.flags.append(flag)
        return True

    def clear_flag(self, flag: str) -> bool:
        """Clear a flag. Returns False if it was not set."""
        if flag not in self.flags:
            return False
        self.flags.remove(flag)
        return True


class LogEntry(BaseModel):
    """A single transcript line. The log is append-only."""

    kind: LogKind
    text: str
    speaker: str | None = None  # user/assistant entries only


class ParsedEntry(BaseModel):
    """One speaker-attributed block produced by the dialogue parser."""

    speaker: str
    text: str


class ParseResult(BaseModel):
    entries: list[ParsedEntry] = Field(default_factory=list)
    trailing_speaker: str | None = None


class TurnResult(BaseModel):
    """Successful turn: narrative text plus the verbatim output items."""

    text: str
    output_items: list[dict[str, Any]] = Field(default_factory=list)
    diagnostics: str = ""
    attempts: int = 1
    refused: bool = False  # text is a "Refusal: ..." notice, not narration


# ---------------------------------------------------------------------------
# Completion Service response schema
#
# Every field is optional; unknown fields are kept. Extraction decides what
# counts as usable text, the schema only pins down shapes.
# ---------------------------------------------------------------------------

class ContentPart(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str | None = None
    text: str | None = None
    refusal: str | None = None


class OutputItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str | None = None
    role: str | None = None
    content: list[ContentPart] | str | None = None

    def parts(self) -> list[ContentPart]:
        """Structured content parts; plain-string content has none."""
        if isinstance(self.content, list):
            return self.content
        return []


class ResponsePayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    output: list[OutputItem] | None = None
    output_text: str | None = None
