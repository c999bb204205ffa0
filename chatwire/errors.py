"""
Typed errors raised by providers, with remediation tips.

Every failure that leaves a provider is a ``ProviderError`` subclass:

  - ``TransportError``          connection refused, timeout, TLS failure
  - ``HttpStatusError``         non-2xx response (carries status and endpoint)
  - ``MalformedResponseError``  response shape mismatch or unparseable JSON
  - ``CancellationError``       the caller's cancel signal was observed
  - ``ConfigurationError``      a provider could not be built from config

Tip selection (``classify_tip``) is a pure lookup on status code and message
text.  Nothing here retries.
"""

from __future__ import annotations

import asyncio

import httpx

TIP_CREDENTIALS = (
    "Check your API key. For LM Studio, ensure the server is running and "
    "any non-empty API key is set."
)
TIP_ENDPOINT = "Verify the API endpoint URL and ensure the server is accessible."
TIP_RATE_LIMIT = "The endpoint is rate limiting requests. Wait and retry later."
TIP_SERVER = (
    "Server error. For LM Studio, ensure a model is loaded and the server "
    "is running properly."
)
TIP_MODEL_NOT_LOADED = "Ensure a model is loaded in your LLM server (e.g., LM Studio)."
TIP_NOT_RUNNING = (
    "Check that your LLM server is running and accessible at the configured endpoint."
)
TIP_TIMEOUT = (
    "The request timed out. Increase the timeout or check that the server "
    "is not overloaded."
)
TIP_GENERIC = "Check the provider configuration and the server logs for details."


def classify_tip(message: str, status: int | None = None) -> str:
    """Return the remediation tip for a failure.  Never returns ``""``."""
    if status in (401, 403):
        return TIP_CREDENTIALS
    if status == 404:
        return TIP_ENDPOINT
    if status == 429:
        return TIP_RATE_LIMIT
    if status is not None and 500 <= status < 600:
        return TIP_SERVER

    lowered = message.lower()
    if "model" in lowered and "not" in lowered:
        return TIP_MODEL_NOT_LOADED
    if (
        "connection" in lowered
        or "refused" in lowered
        or "econnrefused" in lowered
    ):
        return TIP_NOT_RUNNING
    if "timed out" in lowered or "timeout" in lowered:
        return TIP_TIMEOUT
    return TIP_GENERIC


class ProviderError(Exception):
    """Base error for everything a provider can raise."""

    def __init__(
        self,
        message: str,
        status: int | None = None,
        endpoint: str | None = None,
        tip: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.endpoint = endpoint
        self.tip = tip

    def detailed_message(self) -> str:
        parts = [self.message]
        if self.status:
            parts.append(f"Status: {self.status}")
        if self.endpoint:
            parts.append(f"Endpoint: {self.endpoint}")
        if self.tip:
            parts.append(f"Tip: {self.tip}")
        return "\n".join(parts)

    @classmethod
    def create_with_tip(
        cls,
        message: str,
        status: int | None = None,
        endpoint: str | None = None,
    ):
        return cls(message, status, endpoint, classify_tip(message, status))


class TransportError(ProviderError):
    pass


class HttpStatusError(ProviderError):
    pass


class MalformedResponseError(ProviderError):
    pass


class CancellationError(ProviderError):
    def __init__(self, message: str = "Request cancelled", endpoint: str | None = None) -> None:
        super().__init__(message, endpoint=endpoint)


class ConfigurationError(ProviderError):
    pass


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def error_from_response(response: httpx.Response, endpoint: str) -> HttpStatusError:
    """
    Build an ``HttpStatusError`` for a non-2xx response.

    The response body must already be read.  A vendor error message found in
    the body (``{"error": {"message": ...}}``) is preferred over the reason
    phrase.
    """
    status = response.status_code
    message = response.reason_phrase or f"HTTP error {status}"
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and err.get("message"):
            message = str(err["message"])
        elif isinstance(err, str) and err:
            message = err
    return HttpStatusError.create_with_tip(f"HTTP {status}: {message}", status, endpoint)


def error_from_transport(exc: httpx.TransportError, endpoint: str) -> TransportError:
    if isinstance(exc, httpx.TimeoutException):
        message = f"Request timed out: {exc}"
    elif isinstance(exc, httpx.ConnectError):
        message = f"Connection failed: {exc}"
    else:
        message = f"Transport error: {exc}"
    return TransportError.create_with_tip(message, None, endpoint)


def raise_if_cancelled(cancel: asyncio.Event | None, endpoint: str | None = None) -> None:
    """Raise ``CancellationError`` if the caller has set *cancel*."""
    if cancel is not None and cancel.is_set():
        raise CancellationError(endpoint=endpoint)
