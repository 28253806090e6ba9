"""
HTTP client for the test attempt backend.

Endpoints (relative to the configured base URL):
    GET  /tests/{testId}                     -> test definition
    GET  /tests/{testId}/progress/{userId}   -> progress snapshot or 404
    POST /tests/{testId}/save-progress       -> 200 on accept
    POST /tests/{testId}/submit              -> {"attempt": {"id": ...}}, 409, 401/403

Status codes are mapped onto the error kinds in exam_session.core.errors
here and nowhere else. Bearer credentials come from an injected provider
and are fetched fresh for every request.

Usage:
    async with AttemptApiClient(base_url, credential_provider=get_token) as api:
        test = await api.fetch_test("t1")
"""

from __future__ import annotations

import inspect
from typing import Any, Awaitable, Callable, Union

import httpx
from loguru import logger

from exam_session.config import Settings, get_settings
from exam_session.core.errors import (
    AttemptApiError,
    AuthRequiredError,
    ConflictError,
    NotFoundError,
    TransientError,
)
from exam_session.core.models import ProgressSnapshot, TestDefinition

CredentialProvider = Callable[[], Union[str, None, Awaitable[Union[str, None]]]]


class AttemptApiClient:
    """Async REST client for tests, progress and submissions."""

    def __init__(
        self,
        base_url: str,
        credential_provider: CredentialProvider | None = None,
        timeout_seconds: float = 15.0,
    ):
        """
        Args:
            base_url: Base URL for the backend API
            credential_provider: Returns (or resolves to) a bearer token, or None
            timeout_seconds: Request timeout
        """
        self.base_url = base_url.rstrip("/")
        self.credential_provider = credential_provider
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Content-Type": "application/json"},
            timeout=httpx.Timeout(timeout_seconds),
            follow_redirects=True,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        credential_provider: CredentialProvider | None = None,
    ) -> "AttemptApiClient":
        """Build a client from api_base_url and request_timeout_seconds."""
        settings = settings or get_settings()
        return cls(
            base_url=settings.api_base_url,
            credential_provider=credential_provider,
            timeout_seconds=settings.request_timeout_seconds,
        )

    async def __aenter__(self) -> "AttemptApiClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    # =========================================================================
    # Endpoints
    # =========================================================================

    async def fetch_test(self, test_id: str) -> TestDefinition:
        data = await self._request("GET", f"/tests/{test_id}")
        return TestDefinition.model_validate(data)

    async def fetch_progress(self, test_id: str, user_id: str) -> ProgressSnapshot:
        """
        Raises:
            NotFoundError: No progress saved for this user (expected, benign)
        """
        data = await self._request("GET", f"/tests/{test_id}/progress/{user_id}")
        return ProgressSnapshot.model_validate(data)

    async def save_progress(self, test_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", f"/tests/{test_id}/save-progress", json=payload)

    async def submit_attempt(self, test_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        """
        Raises:
            ConflictError: Already submitted server-side
            AuthRequiredError: Credentials rejected
            TransientError: Network failure, timeout or 5xx
        """
        return await self._request("POST", f"/tests/{test_id}/submit", json=payload)

    # =========================================================================
    # Transport
    # =========================================================================

    async def _auth_headers(self) -> dict[str, str]:
        if self.credential_provider is None:
            return {}
        token = self.credential_provider()
        if inspect.isawaitable(token):
            token = await token
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        headers = await self._auth_headers()
        try:
            if method == "GET":
                response = await self.client.get(path, headers=headers)
            else:
                response = await self.client.post(path, json=json, headers=headers)
        except httpx.TimeoutException as e:
            raise TransientError(f"{method} {path} timed out: {e}") from e
        except httpx.RequestError as e:
            raise TransientError(f"{method} {path} failed: {e}") from e

        payload = _decode(response)
        status = response.status_code
        if status < 400:
            if payload is None:
                raise TransientError(
                    f"{method} {path} returned an unreadable body", status_code=status
                )
            return payload

        message = str((payload or {}).get("message") or response.reason_phrase or "error")
        logger.debug(f"{method} {path} -> {status}: {message}")
        if status in (401, 403):
            raise AuthRequiredError(message, status_code=status, payload=payload)
        if status == 404:
            raise NotFoundError(message, status_code=status, payload=payload)
        if status == 409:
            raise ConflictError(message, status_code=status, payload=payload)
        if status >= 500:
            raise TransientError(message, status_code=status, payload=payload)
        raise AttemptApiError(message, status_code=status, payload=payload)


def _decode(response: httpx.Response) -> dict[str, Any] | None:
    """JSON object body, ``{}`` for an empty body, None if undecodable."""
    if not response.content:
        return {}
    try:
        data = response.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else {"data": data}
