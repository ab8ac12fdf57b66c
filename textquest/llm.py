"""Completion Service client — HTTP connection to a Responses-style backend.

The orchestrators inject a client callable matching the protocol:

    async def __call__(self, body: dict) -> dict: ...

`body` is the full JSON request; the return value is the decoded JSON
response. The client owns transport concerns only (auth, timeout, status
handling); retry and text extraction live in the pipeline.

Production code constructs an HttpCompletionClient from settings and the
resolved API key. Tests use ScriptedClient (defined in conftest) instead.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from textquest.config import API_URL, REQUEST_TIMEOUT

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol — every client implementation must match this signature
# ---------------------------------------------------------------------------

class CompletionClient(Protocol):
    async def __call__(self, body: dict[str, Any]) -> dict[str, Any]: ...


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class CompletionError(RuntimeError):
    """Base class for every failure of a single turn or scene request."""


class TransportError(CompletionError):
    """Connection failure, timeout, non-success status, or unreadable body.

    Never retried.
    """


class EmptyOutputError(CompletionError):
    """The service answered but no narrative text could be extracted."""


def extract_api_error_message(resp: httpx.Response) -> str:
    """Best-effort `error.message` from an error body, else the raw text."""
    try:
        data = resp.json()
    except ValueError:
        return resp.text.strip()
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict):
            message = str(error.get("message") or "").strip()
            if message:
                return message
    return resp.text.strip()


# ---------------------------------------------------------------------------
# HttpCompletionClient — connects to the real backend
# ---------------------------------------------------------------------------

class HttpCompletionClient:
    """Async HTTP client for a Responses-compatible endpoint.

    Args:
        api_key:  Bearer token.
        api_url:  Full endpoint URL. Defaults to the OpenAI Responses API.
        timeout:  HTTP timeout in seconds; expiry is a transport error.
    """

    def __init__(
        self,
        api_key: str,
        api_url: str = API_URL,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        self._api_key = api_key
        self._url = api_url
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def __call__(self, body: dict[str, Any]) -> dict[str, Any]:
        logger.debug(
            "completion call url=%s model=%s input_items=%d",
            self._url, body.get("model"), len(body.get("input") or []),
        )

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(self._url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise TransportError(f"Cannot connect to completion service at {self._url}") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            message = extract_api_error_message(e.response)
            raise TransportError(f"API error (HTTP {status}): {message}") from e
        except httpx.TimeoutException as e:
            raise TransportError(f"Completion service timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            raise TransportError(f"Completion request failed: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise TransportError("Unexpected response format: body is not JSON") from e
        if not isinstance(data, dict):
            raise TransportError("Unexpected response format: expected a JSON object")

        logger.debug("completion response keys=%s", sorted(data))
        return data
