"""
Unit tests for the attempt backend API client.
"""

import pytest
import pytest_asyncio
from httpx import ConnectError, Request, Response, TimeoutException

from exam_session.core.errors import (
    AttemptApiError,
    AuthRequiredError,
    ConflictError,
    NotFoundError,
    TransientError,
)
from exam_session.core.models import QuestionType
from exam_session.sync.api_client import AttemptApiClient


@pytest_asyncio.fixture
async def client():
    """API client instance with a static token."""
    client = AttemptApiClient(
        base_url="http://localhost:5000/api/",
        credential_provider=lambda: "token-abc",
        timeout_seconds=5.0,
    )
    yield client
    await client.close()


def _responder(status, body=None, calls=None):
    async def respond(url, **kwargs):
        if calls is not None:
            calls.append((url, kwargs))
        request = Request("GET", f"http://localhost:5000/api{url}")
        if body is None:
            return Response(status, request=request)
        return Response(status, json=body, request=request)
    return respond


class TestFetchTest:
    """Tests for fetch_test()."""

    @pytest.mark.asyncio
    async def test_parses_test_document(self, client, sample_test_data, monkeypatch):
        calls = []
        monkeypatch.setattr(client.client, "get", _responder(200, sample_test_data, calls))

        test = await client.fetch_test("test-001")

        assert calls[0][0] == "/tests/test-001"
        assert calls[0][1]["headers"] == {"Authorization": "Bearer token-abc"}
        assert test.id == "test-001"
        assert test.duration_seconds == 3600
        assert len(test.questions) == 10
        assert test.questions[5].type == QuestionType.MULTI_SELECT
        assert [q.id for q in test.section_questions(1)] == ["q6", "q7", "q8", "q9", "q10"]

    @pytest.mark.asyncio
    async def test_missing_test_raises_not_found(self, client, monkeypatch):
        monkeypatch.setattr(client.client, "get", _responder(404, {"message": "Test not found"}))

        with pytest.raises(NotFoundError) as exc_info:
            await client.fetch_test("nope")
        assert exc_info.value.status_code == 404
        assert exc_info.value.message == "Test not found"


class TestStatusMapping:
    """Tests for mapping HTTP failures onto error kinds."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,error", [
        (401, AuthRequiredError),
        (403, AuthRequiredError),
        (409, ConflictError),
        (500, TransientError),
        (503, TransientError),
    ])
    async def test_submit_status_codes(self, client, monkeypatch, status, error):
        monkeypatch.setattr(client.client, "post", _responder(status, {"message": "nope"}))

        with pytest.raises(error):
            await client.submit_attempt("test-001", {"answers": {}})

    @pytest.mark.asyncio
    async def test_other_client_errors_are_not_transient(self, client, monkeypatch):
        monkeypatch.setattr(client.client, "post", _responder(422, {"message": "bad"}))

        with pytest.raises(AttemptApiError) as exc_info:
            await client.submit_attempt("test-001", {})
        assert not exc_info.value.retryable
        assert type(exc_info.value) is AttemptApiError

    @pytest.mark.asyncio
    async def test_conflict_carries_attempt_id(self, client, monkeypatch):
        monkeypatch.setattr(client.client, "post", _responder(409, {"attempt": {"id": "a-9"}}))

        with pytest.raises(ConflictError) as exc_info:
            await client.submit_attempt("test-001", {})
        assert exc_info.value.attempt_id == "a-9"

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self, client, monkeypatch):
        async def mock_post(url, **kwargs):
            raise TimeoutException("Timeout")

        monkeypatch.setattr(client.client, "post", mock_post)

        with pytest.raises(TransientError) as exc_info:
            await client.save_progress("test-001", {})
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_connection_error_is_transient(self, client, monkeypatch):
        async def mock_get(url, **kwargs):
            raise ConnectError("refused")

        monkeypatch.setattr(client.client, "get", mock_get)

        with pytest.raises(TransientError):
            await client.fetch_progress("test-001", "user-1")


class TestProgress:
    """Tests for progress endpoints."""

    @pytest.mark.asyncio
    async def test_fetch_progress_parses_snapshot(self, client, monkeypatch):
        body = {
            "answers": {"q1": "A"},
            "timeLeft": 1200,
            "markedForReview": ["q2"],
            "visited": ["q3"],
            "saveTimestamp": "2024-05-01T10:00:00Z",
        }
        calls = []
        monkeypatch.setattr(client.client, "get", _responder(200, body, calls))

        snapshot = await client.fetch_progress("test-001", "user-1")

        assert calls[0][0] == "/tests/test-001/progress/user-1"
        assert snapshot.answers == {"q1": "A"}
        assert snapshot.time_left == 1200
        assert snapshot.marked_for_review == ["q2"]
        assert snapshot.visited == ["q3"]
        assert snapshot.save_timestamp is not None

    @pytest.mark.asyncio
    async def test_unparsable_save_timestamp_is_dropped(self, client, monkeypatch):
        body = {"answers": {}, "timeLeft": 100, "saveTimestamp": "not a date"}
        monkeypatch.setattr(client.client, "get", _responder(200, body))

        snapshot = await client.fetch_progress("test-001", "user-1")

        assert snapshot.save_timestamp is None
        assert snapshot.time_left == 100

    @pytest.mark.asyncio
    async def test_save_progress_posts_payload(self, client, monkeypatch):
        calls = []
        monkeypatch.setattr(client.client, "post", _responder(200, {"message": "ok"}, calls))

        payload = {"answers": {"q1": "A"}, "timeLeft": 10, "markedForReview": [], "visited": ["q1"]}
        result = await client.save_progress("test-001", payload)

        assert result == {"message": "ok"}
        assert calls[0][0] == "/tests/test-001/save-progress"
        assert calls[0][1]["json"] == payload

    @pytest.mark.asyncio
    async def test_empty_body_is_accepted(self, client, monkeypatch):
        monkeypatch.setattr(client.client, "post", _responder(200))
        assert await client.save_progress("test-001", {}) == {}


class TestCredentials:
    """Tests for the injected credential provider."""

    @pytest.mark.asyncio
    async def test_async_provider(self, sample_test_data, monkeypatch):
        async def provider():
            return "async-token"

        client = AttemptApiClient("http://localhost:5000/api", credential_provider=provider)
        calls = []
        monkeypatch.setattr(client.client, "get", _responder(200, sample_test_data, calls))
        try:
            await client.fetch_test("test-001")
        finally:
            await client.close()

        assert calls[0][1]["headers"] == {"Authorization": "Bearer async-token"}

    @pytest.mark.asyncio
    async def test_no_token_sends_no_header(self, sample_test_data, monkeypatch):
        client = AttemptApiClient("http://localhost:5000/api", credential_provider=lambda: None)
        calls = []
        monkeypatch.setattr(client.client, "get", _responder(200, sample_test_data, calls))
        try:
            await client.fetch_test("test-001")
        finally:
            await client.close()

        assert calls[0][1]["headers"] == {}


class TestFromSettings:
    """Tests for AttemptApiClient.from_settings()."""

    @pytest.mark.asyncio
    async def test_uses_base_url_and_timeout(self, settings):
        client = AttemptApiClient.from_settings(settings, credential_provider=lambda: "t")
        try:
            assert client.base_url == "http://testserver/api"
            assert str(client.client.base_url).rstrip("/") == "http://testserver/api"
            assert client.client.timeout.read == settings.request_timeout_seconds
            assert await client._auth_headers() == {"Authorization": "Bearer t"}
        finally:
            await client.close()
