"""Tests for textquest.models."""

import pytest
from pydantic import ValidationError

from textquest.models import GameState, LogEntry, OutputItem, ResponsePayload


class TestGameState:
    def test_defaults(self) -> None:
        state = GameState()
        assert state.turn == 0
        assert state.location == "Unknown"
        assert state.inventory == []
        assert state.flags == []
        assert state.active_speaker is None

    def test_inventory_allows_duplicates(self) -> None:
        state = GameState()
        state.add_item("coin")
        state.add_item("coin")
        assert state.inventory == ["coin", "coin"]

    def test_remove_item_removes_first_match(self) -> None:
        state = GameState(inventory=["coin", "key", "coin"])
        assert state.remove_item("coin") is True
        assert state.inventory == ["key", "coin"]
        assert state.remove_item("lamp") is False

    def test_flags_reject_duplicates(self) -> None:
        state = GameState()
        assert state.set_flag("door_open") is True
        assert state.set_flag("door_open") is False
        assert state.flags == ["door_open"]

    def test_clear_flag(self) -> None:
        state = GameState(flags=["a", "b"])
        assert state.clear_flag("a") is True
        assert state.clear_flag("a") is False
        assert state.flags == ["b"]

    def test_snapshot_is_deep(self) -> None:
        state = GameState(inventory=["rope"])
        snap = state.snapshot()
        state.inventory.append("lamp")
        state.turn = 5
        assert snap.inventory == ["rope"]
        assert snap.turn == 0


class TestLogEntry:
    def test_speaker_defaults_to_none(self) -> None:
        entry = LogEntry(kind="system", text="Welcome!")
        assert entry.speaker is None

    def test_invalid_kind_rejected(self) -> None:
        with pytest.raises(ValidationError):
            LogEntry(kind="gossip", text="x")


class TestResponsePayload:
    def test_missing_fields_tolerated(self) -> None:
        payload = ResponsePayload.model_validate({"id": "resp_1"})
        assert payload.output is None
        assert payload.output_text is None

    def test_string_content_has_no_parts(self) -> None:
        item = OutputItem.model_validate({"type": "message", "role": "user", "content": "hi"})
        assert item.parts() == []

    def test_unknown_fields_kept(self) -> None:
        item = OutputItem.model_validate({"type": "reasoning", "summary": [], "id": "rs_1"})
        assert item.type == "reasoning"
        assert item.model_extra == {"summary": [], "id": "rs_1"}

    def test_non_list_output_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ResponsePayload.model_validate({"output": "nope"})
