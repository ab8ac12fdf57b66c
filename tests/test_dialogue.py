"""Tests for parse_dialogue, fallback_entries and exit-cue detection."""

import pytest

from textquest.dialogue import (
    fallback_entries,
    format_entries,
    is_exit_cue,
    next_active_speaker,
    parse_dialogue,
    parse_label,
    split_misattributed,
)
from textquest.models import ParsedEntry, ParseResult


def _pairs(text: str) -> list[tuple[str, str]]:
    return [(e.speaker, e.text) for e in parse_dialogue(text).entries]


# ── parse_label ────────────────────────────────────────────


def test_label_basic():
    assert parse_label("Clerk: Hello there.") == ("Clerk", "Hello there.")


def test_label_narrator_normalized():
    assert parse_label("NARRATOR: Rain falls.") == ("Narrator", "Rain falls.")
    assert parse_label("  narrator :x") == ("Narrator", "x")


def test_label_allows_apostrophes_hyphens_digits():
    assert parse_label("Old Man O'Brien-2: Hm.") == ("Old Man O'Brien-2", "Hm.")


@pytest.mark.parametrize("line", [
    "No colon here",
    ": empty label",
    "123: digits only",
    '"Quoted": nope',
    "A" * 41 + ": too long",
    "Time (now): brackets",
])
def test_invalid_labels(line):
    assert parse_label(line) is None


def test_label_splits_at_first_colon():
    assert parse_label("Guard: Halt: who goes there?") == ("Guard", "Halt: who goes there?")


# ── parse_dialogue ─────────────────────────────────────────


def test_single_narrator_line():
    result = parse_dialogue("Narrator: You see a dusty counter.")
    assert _pairs("Narrator: You see a dusty counter.") == [("Narrator", "You see a dusty counter.")]
    assert result.trailing_speaker == "Narrator"


def test_unlabeled_text_opens_narrator_block():
    assert _pairs("The wind howls.\nA door bangs.") == [("Narrator", "The wind howls.\nA door bangs.")]


def test_unlabeled_lines_continue_open_block():
    text = 'Clerk: "Welcome."\n"Anything I can help with?"'
    assert _pairs(text) == [("Clerk", '"Welcome."\n"Anything I can help with?"')]


def test_narrator_then_character():
    text = 'Narrator: The clerk looks up.\nClerk: "Can I help you?"'
    result = parse_dialogue(text)
    assert [(e.speaker, e.text) for e in result.entries] == [
        ("Narrator", "The clerk looks up."),
        ("Clerk", '"Can I help you?"'),
    ]
    assert result.trailing_speaker == "Clerk"


def test_same_speaker_lines_merged():
    text = "Clerk: First.\nclerk: Second."
    assert _pairs(text) == [("Clerk", "First.\nSecond.")]


def test_same_speaker_merged_across_dropped_line():
    text = "Narrator: One.\nYou: I wave.\nNarrator: Two."
    assert _pairs(text) == [("Narrator", "One.\nTwo.")]


@pytest.mark.parametrize("label", ["You", "PLAYER", "user", "  You  "])
def test_disallowed_speakers_dropped(label):
    text = f"Narrator: The shop is quiet.\n{label}: I buy everything.\nClerk: \"Sure.\""
    speakers = [s for s, _ in _pairs(text)]
    assert speakers == ["Narrator", "Clerk"]
    assert all("buy everything" not in t for _, t in _pairs(text))


def test_only_disallowed_lines_yield_nothing():
    result = parse_dialogue("You: I look around.\nPlayer: Hello?")
    assert result.entries == []
    assert result.trailing_speaker is None


def test_blank_and_empty_blocks_dropped():
    text = "\n\nClerk:\n\nNarrator: Silence.\n\n"
    assert _pairs(text) == [("Narrator", "Silence.")]


def test_trailing_whitespace_trimmed():
    assert _pairs("Narrator: Dust.   \n   \n") == [("Narrator", "Dust.")]


def test_indentation_of_first_line_kept():
    text = "Narrator:\n\n   /\\\n  /__\\"
    assert _pairs(text) == [("Narrator", "   /\\\n  /__\\")]


def test_empty_input():
    result = parse_dialogue("")
    assert result.entries == []
    assert result.trailing_speaker is None


def test_trailing_speaker_is_last_label():
    text = 'Clerk: "Hi."\nNarrator: The clerk returns to work.'
    assert parse_dialogue(text).trailing_speaker == "Narrator"


# ── Misattribution repair ──────────────────────────────────


def test_misattribution_split_on_quote():
    result = parse_dialogue('Clerk: You pick up the can. "Nice find," he says.')
    assert [(e.speaker, e.text) for e in result.entries] == [
        ("Narrator", "You pick up the can."),
        ("Clerk", '"Nice find," he says.'),
    ]
    assert result.trailing_speaker == "Clerk"


def test_misattribution_split_on_sentence():
    text = "Guard: You walk toward the gate. Stop right there!"
    assert _pairs(text) == [
        ("Narrator", "You walk toward the gate."),
        ("Guard", "Stop right there!"),
    ]


def test_misattribution_earliest_sentence_break_wins():
    text = "Guard: You turn around? Maybe. Who knows."
    assert _pairs(text) == [
        ("Narrator", "You turn around?"),
        ("Guard", "Maybe. Who knows."),
    ]


def test_misattribution_whole_line_is_narration():
    result = parse_dialogue("Clerk: You sit down on the stool.")
    assert [(e.speaker, e.text) for e in result.entries] == [
        ("Narrator", "You sit down on the stool."),
    ]
    assert result.trailing_speaker == "Narrator"


def test_misattribution_merges_into_preceding_narration():
    text = 'Narrator: The shop is dim.\nClerk: You open the fridge. "Careful."'
    assert _pairs(text) == [
        ("Narrator", "The shop is dim.\nYou open the fridge."),
        ("Clerk", '"Careful."'),
    ]


def test_no_split_without_action_verb():
    assert _pairs("Clerk: You seem lost, friend.") == [("Clerk", "You seem lost, friend.")]
    assert _pairs("Clerk: You there! Come here.") == [("Clerk", "You there! Come here.")]


def test_no_split_for_narrator_label():
    assert _pairs("Narrator: You grab the rope. It holds.") == [
        ("Narrator", "You grab the rope. It holds."),
    ]


def test_split_misattributed_helper():
    assert split_misattributed("you leave. Bye!") == ("you leave.", "Bye!")
    assert split_misattributed("Hello you") is None


# ── Properties ─────────────────────────────────────────────


def test_reparse_of_serialized_blocks_is_stable():
    text = (
        "Narrator: The tavern is loud.\nSmoke hangs low.\n"
        'Barkeep: "What\'ll it be?"\n'
        "Narrator: A stool creaks.\n"
        'Old Sailor: "Sit, sit."'
    )
    first = parse_dialogue(text).entries
    second = parse_dialogue(format_entries(first)).entries
    assert second == first


def test_fallback_strips_disallowed_lines():
    entries = fallback_entries("You: I dance.\nSome stray words.\n")
    assert entries == [ParsedEntry(speaker="Narrator", text="Some stray words.")]


def test_fallback_empty_when_nothing_left():
    assert fallback_entries("User: hi\n\n") == []


def test_fallback_keeps_unparsed_labels():
    assert fallback_entries("Clerk:") == [ParsedEntry(speaker="Narrator", text="Clerk:")]


# ── next_active_speaker ────────────────────────────────────


def test_active_speaker_character():
    result = ParseResult(entries=[ParsedEntry(speaker="Clerk", text="x")], trailing_speaker="Clerk")
    assert next_active_speaker(result) == "Clerk"


def test_active_speaker_narrator_clears():
    result = ParseResult(entries=[ParsedEntry(speaker="Narrator", text="x")], trailing_speaker="Narrator")
    assert next_active_speaker(result) is None


def test_active_speaker_none_without_entries():
    assert next_active_speaker(ParseResult(entries=[], trailing_speaker="Clerk")) is None


# ── Exit cues ──────────────────────────────────────────────


@pytest.mark.parametrize("text", [
    "leave the shop",
    "Walk away slowly",
    "exit",
    "Okay, I'm gone",
    "I head outside now",
    "leave",
    "Bye.",
    "I’m gone",
    "goodbye, clerk",
])
def test_exit_cues_detected(text):
    assert is_exit_cue(text)


@pytest.mark.parametrize("text", [
    "ask about the can",
    "what do you sell?",
    "leaves are falling",
    "I'm going to buy this",
])
def test_non_exit_inputs(text):
    assert not is_exit_cue(text)
