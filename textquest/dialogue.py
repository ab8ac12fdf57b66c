"""Narrator output parsing into speaker-attributed blocks.

Expected output format, one label per block:

    Narrator: You step into the shop. A bell rings.
    Clerk: "Welcome! Looking for anything in particular?"

Parsing rules:
  - A label is the text before the first colon: 1-40 characters of letters,
    digits, spaces, apostrophes and hyphens, with at least one letter.
    Anything else is continuation text for the open block.
  - "narrator" in any case becomes the canonical "Narrator".
  - Lines labeled You/Player/User are dropped; only the narrator and
    in-world characters may speak.
  - A character line that starts with "you <action verb>" is narration
    under the wrong label. It is split: narration goes to the Narrator, the
    quoted part (or the text after the first sentence) stays with the
    character.
  - Unlabeled lines continue the open block (Narrator if none is open).
  - Adjacent blocks with the same speaker are merged.

The last label seen decides who holds the conversation after the turn.
"""

from __future__ import annotations

from textquest.models import NARRATOR, ParsedEntry, ParseResult

LABEL_MAX_LEN = 40

DISALLOWED_SPEAKERS = frozenset({"you", "player", "user"})

ACTION_VERBS = frozenset({
    "pick", "grab", "take", "walk", "open", "close", "leave", "turn", "sit",
    "stand", "look", "step", "move", "reach", "head", "enter", "climb",
    "push", "pull", "run", "follow", "examine", "search", "put", "drop",
    "hand", "give", "place", "set", "lean", "wander", "approach", "glance",
    "return", "pocket", "knock", "kneel",
})

_LABEL_PUNCTUATION = " '’-"
_QUOTE_CHARS = "\"“"
_SENTENCE_BREAKS = (". ", "? ", "! ")

EXIT_PREFIXES = (
    "leave ", "walk away", "exit", "go outside", "step outside", "head out",
    "goodbye", "bye ",
)
EXIT_WORDS = frozenset({"leave", "bye"})
EXIT_SUBSTRINGS = (
    "outside now", "i'm gone", "i am gone", "im gone", "walk away",
    "walk out", "leave the", "say goodbye", "end the conversation",
)


# ── Labels ─────────────────────────────────────────────────


def parse_label(line: str) -> tuple[str, str] | None:
    """Split "Speaker: rest" into (label, rest), or None if there is no valid label."""
    raw_label, sep, rest = line.partition(":")
    if not sep:
        return None
    label = raw_label.strip()
    if not label or len(label) > LABEL_MAX_LEN:
        return None
    if not any(ch.isalpha() for ch in label):
        return None
    if not all(ch.isalnum() or ch in _LABEL_PUNCTUATION for ch in label):
        return None
    if label.lower() == NARRATOR.lower():
        label = NARRATOR
    return label, rest.strip()


def is_narrator(label: str | None) -> bool:
    return label is not None and label.strip().lower() == NARRATOR.lower()


def is_disallowed_speaker(label: str) -> bool:
    return label.strip().lower() in DISALLOWED_SPEAKERS


def _is_disallowed_line(line: str) -> bool:
    parsed = parse_label(line)
    return parsed is not None and is_disallowed_speaker(parsed[0])


# ── Misattribution repair ──────────────────────────────────


def split_misattributed(rest: str) -> tuple[str, str] | None:
    """Split a character line that is really narration.

    Returns (narration, dialogue) when `rest` starts with "you <action verb>",
    else None. `dialogue` may be empty.
    """
    lowered = rest.lower()
    if not lowered.startswith("you "):
        return None
    words = lowered[4:].split()
    if not words or words[0].strip(".,;:!?") not in ACTION_VERBS:
        return None

    quotes = [i for i in (rest.find(q) for q in _QUOTE_CHARS) if i >= 0]
    if quotes:
        cut = min(quotes)
        return rest[:cut].strip(), rest[cut:].strip()

    breaks = [i for i in (rest.find(b) for b in _SENTENCE_BREAKS) if i >= 0]
    if not breaks:
        return rest.strip(), ""
    cut = min(breaks)
    return rest[:cut + 1].strip(), rest[cut + 2:].strip()


# ── Block accumulation ─────────────────────────────────────


class _BlockBuilder:
    def __init__(self) -> None:
        self.entries: list[ParsedEntry] = []
        self._speaker: str | None = None
        self._lines: list[str] = []

    def open(self, speaker: str, first_line: str = "") -> None:
        self.flush()
        self._speaker = speaker
        self._lines = [first_line] if first_line else []

    def append(self, line: str) -> None:
        if self._speaker is None:
            self._speaker = NARRATOR
        self._lines.append(line)

    def flush(self) -> None:
        if self._speaker is None:
            return
        speaker, lines = self._speaker, self._lines
        self._speaker, self._lines = None, []
        # leading blank lines go, indentation of the first text line stays
        while lines and not lines[0].strip():
            lines.pop(0)
        text = "\n".join(lines).rstrip()
        if not text:
            return
        if self.entries and self.entries[-1].speaker.lower() == speaker.lower():
            last = self.entries[-1]
            last.text = f"{last.text}\n{text}"
            return
        self.entries.append(ParsedEntry(speaker=speaker, text=text))


def parse_dialogue(text: str) -> ParseResult:
    """Parse narrator output into speaker blocks plus the trailing speaker."""
    blocks = _BlockBuilder()
    trailing: str | None = None

    for raw_line in text.splitlines():
        line = raw_line.rstrip()
        parsed = parse_label(line)
        if parsed is None:
            blocks.append(line)
            continue

        label, rest = parsed
        if is_disallowed_speaker(label):
            continue

        if label != NARRATOR:
            split = split_misattributed(rest)
            if split is not None:
                narration, dialogue = split
                blocks.open(NARRATOR, narration)
                trailing = NARRATOR
                if dialogue:
                    blocks.open(label, dialogue)
                    trailing = label
                continue

        blocks.open(label, rest)
        trailing = label

    blocks.flush()
    return ParseResult(entries=blocks.entries, trailing_speaker=trailing)


def fallback_entries(text: str) -> list[ParsedEntry]:
    """Single Narrator block for output the parser could not attribute."""
    kept = [line for line in text.splitlines() if not _is_disallowed_line(line)]
    remaining = "\n".join(kept).strip()
    if not remaining:
        return []
    return [ParsedEntry(speaker=NARRATOR, text=remaining)]


def next_active_speaker(result: ParseResult) -> str | None:
    """Active speaker after a parse: the trailing character, or None for the Narrator."""
    if not result.entries or is_narrator(result.trailing_speaker):
        return None
    return result.trailing_speaker


def format_entries(entries: list[ParsedEntry]) -> str:
    """Serialize blocks back to labeled text."""
    return "\n".join(f"{e.speaker}: {e.text}" for e in entries)


# ── Exit cues ──────────────────────────────────────────────


def is_exit_cue(player_input: str) -> bool:
    """True if the player's input reads as leaving the current conversation."""
    lowered = player_input.strip().lower().replace("’", "'")
    if lowered.rstrip(".!") in EXIT_WORDS:
        return True
    if lowered.startswith(EXIT_PREFIXES):
        return True
    return any(cue in lowered for cue in EXIT_SUBSTRINGS)
