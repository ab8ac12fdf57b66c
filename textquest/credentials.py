"""API key resolution and storage.

Lookup order: the OPENAI_API_KEY environment variable, then the same key in
a local `.env` file (KEY=VALUE lines). Keys may be quoted. A key entered
interactively is validated against the service and then written back to
`.env`, replacing any previous value.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import httpx
from dotenv import dotenv_values, set_key

from textquest.config import API_INPUT_TOKENS_URL, API_KEY_VAR, MODEL, VALIDATION_TIMEOUT
from textquest.llm import extract_api_error_message

logger = logging.getLogger(__name__)


class CredentialError(RuntimeError):
    """Raised when an API key is rejected or cannot be checked."""


def normalize_key(raw: str | None) -> str | None:
    """Strip whitespace and one pair of matching quotes; None if nothing is left."""
    if raw is None:
        return None
    key = raw.strip()
    if len(key) >= 2 and key[0] == key[-1] and key[0] in ("'", '"'):
        key = key[1:-1].strip()
    return key or None


def read_env_key() -> str | None:
    return normalize_key(os.getenv(API_KEY_VAR))


def read_key_from_env_file(path: Path) -> str | None:
    if not path.is_file():
        return None
    return normalize_key(dotenv_values(path).get(API_KEY_VAR))


def candidate_keys(env_path: Path) -> list[tuple[str, str]]:
    """(source, key) pairs to try, in lookup order, without duplicates."""
    found: list[tuple[str, str]] = []
    env_key = read_env_key()
    if env_key:
        found.append(("environment", env_key))
    file_key = read_key_from_env_file(env_path)
    if file_key and file_key != env_key:
        found.append((str(env_path), file_key))
    return found


def upsert_env_key(path: Path, key: str) -> None:
    """Write the key into `path`, replacing an existing entry."""
    path.touch(exist_ok=True)
    set_key(str(path), API_KEY_VAR, key, quote_mode="never")
    logger.debug("stored %s in %s", API_KEY_VAR, path)


async def validate_api_key(
    api_key: str,
    url: str = API_INPUT_TOKENS_URL,
    model: str = MODEL,
    timeout: float = VALIDATION_TIMEOUT,
) -> None:
    """Send a cheap token-count request; raise CredentialError if it is refused."""
    body = {"model": model, "input": "Test request to validate API key."}
    headers = {"Authorization": f"Bearer {api_key}"}
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            resp = await client.post(url, json=body, headers=headers)
            resp.raise_for_status()
    except httpx.HTTPStatusError as e:
        message = extract_api_error_message(e.response)
        raise CredentialError(f"API error (HTTP {e.response.status_code}): {message}") from e
    except httpx.HTTPError as e:
        raise CredentialError(f"Could not reach the API to validate the key: {e}") from e
