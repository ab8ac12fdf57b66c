from typing import Any

import pytest

from textquest.config import Settings


def assistant_message(*texts: str) -> dict[str, Any]:
    """One assistant message output item with an output_text part per text."""
    return {
        "type": "message",
        "role": "assistant",
        "content": [{"type": "output_text", "text": t} for t in texts],
    }


def response(*items: dict[str, Any], **extra: Any) -> dict[str, Any]:
    return {"output": list(items), **extra}


class ScriptedClient:
    """Completion client that replays canned responses and records request bodies.

    Each scripted entry is either a response dict or an exception to raise.
    """

    def __init__(self, *script: Any) -> None:
        self._script = list(script)
        self.bodies: list[dict[str, Any]] = []

    async def __call__(self, body: dict[str, Any]) -> dict[str, Any]:
        self.bodies.append(body)
        if not self._script:
            raise AssertionError("ScriptedClient ran out of responses")
        step = self._script.pop(0)
        if isinstance(step, BaseException):
            raise step
        return step


@pytest.fixture
def settings() -> Settings:
    """Settings with scene rendering off; scene tests switch it back on."""
    return Settings(scene_enabled=False)
