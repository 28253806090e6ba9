"""
Error kinds for a test attempt session.

Every failure that crosses the network boundary is an AttemptApiError.
The subclasses let callers tell apart the outcomes that need different
handling: a missing test, expired credentials, a duplicate submission,
and a transient failure that is worth retrying.
"""

from __future__ import annotations

from typing import Any


class AttemptApiError(Exception):
    """Raised when the backend rejects or fails a request."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        payload: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload or {}

    @property
    def retryable(self) -> bool:
        return False


class NotFoundError(AttemptApiError):
    """The requested test or progress record does not exist (404)."""


class TestNotFoundError(NotFoundError):
    """The test itself is missing. Fatal to the session."""

    __test__ = False


class AuthRequiredError(AttemptApiError):
    """Credentials are missing, invalid or expired (401/403)."""


class ConflictError(AttemptApiError):
    """The attempt was already submitted server-side (409)."""

    @property
    def attempt_id(self) -> str | None:
        return extract_attempt_id(self.payload)


class TransientError(AttemptApiError):
    """Network failure, timeout or 5xx. Safe to retry."""

    @property
    def retryable(self) -> bool:
        return True


class InvalidStateError(Exception):
    """Malformed local state, e.g. an answer for a retired question id."""


def extract_attempt_id(data: dict[str, Any] | None) -> str | None:
    """Pull a server-issued attempt id out of a response body."""
    if not isinstance(data, dict):
        return None
    attempt = data.get("attempt")
    if isinstance(attempt, dict):
        attempt_id = attempt.get("id") or attempt.get("_id")
        if attempt_id:
            return str(attempt_id)
    attempt_id = data.get("attemptId")
    return str(attempt_id) if attempt_id else None
