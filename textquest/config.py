"""Engine constants, prompt texts, and runtime settings.

Settings are read from the process environment after loading a local
`.env` file (python-dotenv). Every variable is optional; unset values fall
back to the module constants below.

    TEXTQUEST_MODEL              model for turn requests
    TEXTQUEST_SCENE_MODEL        model for scene requests
    TEXTQUEST_API_URL            Responses endpoint
    TEXTQUEST_TIMEOUT            HTTP timeout in seconds
    TEXTQUEST_MAX_HISTORY_ITEMS  history bound (items, not chunks)
    TEXTQUEST_VERBOSE            "1"/"true" to log output diagnostics
    TEXTQUEST_SCENE              "0"/"false" to disable scene rendering
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel

MODEL = "gpt-5-mini"
SCENE_MODEL = "gpt-5-mini"
API_URL = "https://api.openai.com/v1/responses"
API_INPUT_TOKENS_URL = "https://api.openai.com/v1/responses/input_tokens"
API_KEY_VAR = "OPENAI_API_KEY"

MAX_HISTORY_ITEMS = 60
MAIN_MAX_OUTPUT_TOKENS = 800
SCENE_MAX_OUTPUT_TOKENS = 600
REQUEST_TIMEOUT = 60.0
VALIDATION_TIMEOUT = 15.0
POLL_INTERVAL = 0.2

SYSTEM_PROMPT = """You are a text adventure game narrator.
Write in second person, present tense.
Always prefix each line with a speaker label, e.g. "Narrator:" or "Clerk:".
Only the narrator or in-world characters may speak. Never output lines for the player (no "You:", "Player:", or "User:").
Use one speaker label per block; do not repeat the same label for consecutive lines.
Use the "Current speaker" field below: if it is not "Narrator", the player is addressing that character.
If the player directly addresses a named character, respond as that character until the dialogue ends.
If the player leaves, moves away, or ends the interaction, switch back to "Narrator:" and do not continue the character's dialogue.
If the player addresses "him/her/them" or speaks to someone in the scene, pick the most likely character and respond as them.
During dialogue, the Narrator should stay silent unless ending the dialogue; use "Narrator:" to resume narration.
Narrator describes actions and scene changes; characters only speak dialogue. If both are needed, use two lines: Narrator first, then the character.
When a character speaks, use quotation marks around their words.
Keep character names consistent when labeling lines.
Keep responses concise: 1-2 short paragraphs, then ask what the player does next.
Do not use markdown code fences or JSON in your response.
Avoid meta commentary about being an AI.
"""

SCENE_PROMPT = """You draw scenes for a text adventure as ASCII art.
Draw the current location from the player's point of view, using the details below.
Use plain ASCII characters only, at most 16 lines of at most 60 columns.
Do not add captions, explanations, markdown code fences, or speaker labels.
"""

RETRY_NUDGE = "Please respond with visible text only."

SCENE_PLACEHOLDER = "(no scene)"


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    """Runtime settings shared by the session and both orchestrators."""

    api_url: str = API_URL
    model: str = MODEL
    scene_model: str = SCENE_MODEL
    max_output_tokens: int = MAIN_MAX_OUTPUT_TOKENS
    scene_max_output_tokens: int = SCENE_MAX_OUTPUT_TOKENS
    timeout: float = REQUEST_TIMEOUT
    max_history_items: int = MAX_HISTORY_ITEMS
    poll_interval: float = POLL_INTERVAL
    verbose: bool = False
    scene_enabled: bool = True

    @classmethod
    def from_env(cls, env_file: Path | None = None) -> Settings:
        """Load `.env` (if present) and build settings from TEXTQUEST_* variables."""
        load_dotenv(env_file or Path(".env"))
        return cls(
            api_url=os.getenv("TEXTQUEST_API_URL", API_URL),
            model=os.getenv("TEXTQUEST_MODEL", MODEL),
            scene_model=os.getenv("TEXTQUEST_SCENE_MODEL", SCENE_MODEL),
            timeout=float(os.getenv("TEXTQUEST_TIMEOUT", str(REQUEST_TIMEOUT))),
            max_history_items=int(
                os.getenv("TEXTQUEST_MAX_HISTORY_ITEMS", str(MAX_HISTORY_ITEMS))
            ),
            verbose=_env_flag("TEXTQUEST_VERBOSE", False),
            scene_enabled=_env_flag("TEXTQUEST_SCENE", True),
        )
