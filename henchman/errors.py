"""
HENCHMAN error taxonomy.

Every remote failure (completion service, Linear, GitHub, Slack) is
normalized into a single RemoteAPIError carrying the HTTP status, the
server's retry hint and a short message. The gateway's retry policy and
the handlers' fallbacks only ever look at that shape.
"""

from __future__ import annotations

from typing import Any

import httpx

_RATE_LIMIT_SIGNATURES = ("rate limit", "rate_limit", "ratelimit", "too many requests", "quota")


class HenchmanError(Exception):
    """Base class for all HENCHMAN errors."""


class ConfigurationError(HenchmanError):
    """A provider or credential needed for this operation is not configured."""


class ParseError(HenchmanError):
    """Structured output from the completion service was not well-formed."""


class PartialFetchError(HenchmanError):
    """None of the requested repository files could be fetched."""

    def __init__(self, message: str, missing: list[str] | None = None):
        super().__init__(message)
        self.missing = missing or []


class RemoteAPIError(HenchmanError):
    """A remote system rejected or failed a call."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        retry_after_ms: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.retry_after_ms = retry_after_ms

    @property
    def is_rate_limit(self) -> bool:
        return self.status_code == 429 or _has_rate_limit_signature(self.message)

    def __str__(self) -> str:
        if self.status_code:
            return f"{self.message} (HTTP {self.status_code})"
        return self.message


class RateLimitError(RemoteAPIError):
    """The remote service asked us to slow down."""

    @property
    def is_rate_limit(self) -> bool:
        return True


class ProviderError(RemoteAPIError):
    """An external provider (issue tracker, code host) rejected a call."""


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

def _has_rate_limit_signature(text: str) -> bool:
    lowered = (text or "").lower()
    return any(sig in lowered for sig in _RATE_LIMIT_SIGNATURES)


def parse_retry_after(headers: Any) -> int | None:
    """Read a retry hint (in milliseconds) from response headers.

    Understands ``retry-after-ms`` and the standard ``Retry-After`` given
    in seconds. HTTP-date values are ignored.
    """
    if not headers:
        return None

    raw_ms = headers.get("retry-after-ms")
    if raw_ms:
        try:
            return max(0, int(float(raw_ms)))
        except (TypeError, ValueError):
            pass

    raw = headers.get("retry-after")
    if raw:
        try:
            return max(0, int(float(raw) * 1000))
        except (TypeError, ValueError):
            return None
    return None


def remote_error_from_response(
    response: httpx.Response,
    error_cls: type[RemoteAPIError] = RemoteAPIError,
) -> RemoteAPIError:
    """Build a normalized error from a failed HTTP response."""
    message = response.reason_phrase or "request failed"
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        message = str(payload.get("message") or payload.get("error") or message)
    elif response.text:
        message = response.text[:200]

    retry_after_ms = parse_retry_after(response.headers)
    if response.status_code == 429 or (
        response.status_code == 403 and _has_rate_limit_signature(message)
    ):
        return RateLimitError(message, response.status_code or 429, retry_after_ms)

    return error_cls(message, response.status_code, retry_after_ms)


def remote_error_from_exception(exc: BaseException) -> RemoteAPIError:
    """Normalize an arbitrary SDK exception (litellm, openai, httpx)."""
    if isinstance(exc, RemoteAPIError):
        return exc

    status_code = getattr(exc, "status_code", None)
    if not isinstance(status_code, int):
        status_code = None

    response = getattr(exc, "response", None)
    headers = getattr(response, "headers", None)
    retry_after_ms = parse_retry_after(headers)

    message = str(exc) or exc.__class__.__name__
    if status_code == 429 or "RateLimit" in exc.__class__.__name__ or _has_rate_limit_signature(message):
        return RateLimitError(message, status_code or 429, retry_after_ms)

    return RemoteAPIError(message, status_code, retry_after_ms)


def is_rate_limit_error(exc: BaseException) -> bool:
    """The single predicate the gateway retries on."""
    if isinstance(exc, RemoteAPIError):
        return exc.is_rate_limit
    return _has_rate_limit_signature(str(exc))
