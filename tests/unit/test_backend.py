"""
Unit tests for the ingest backend client and payload models.
"""

import json
from datetime import datetime, timezone

import httpx
import pytest

from coach.activity import ActivityResult, DifficultyLevel
from coach.backend import (
    SESSION_START_FAILED_PATH,
    SESSION_SUMMARY_PATH,
    ActivityResultPayload,
    BackendClient,
    SessionStartFailedPayload,
    SessionStatus,
    SessionSummaryPayload,
    create_session_identifiers,
)
from coach.domains import CognitiveDomain
from coach.errors import BackendError


def _summary(**overrides) -> SessionSummaryPayload:
    data = {
        "session_id": "s-1",
        "plan_id": "p-1",
        "status": SessionStatus.SUCCESS,
        "started_at": "2026-01-01T10:00:00+00:00",
        "ended_at": "2026-01-01T10:15:00+00:00",
        "duration_seconds": 900,
        "turn_count": 12,
        "device_id": "dev-1",
    }
    data.update(overrides)
    return SessionSummaryPayload(**data)


class Recorder:
    """MockTransport handler that returns queued status codes and keeps requests."""

    def __init__(self, *statuses: int):
        self.statuses = list(statuses) or [200]
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        return httpx.Response(status, json={"ok": status < 400})


def _client(recorder: Recorder, **kwargs) -> BackendClient:
    return BackendClient(
        "http://backend.test/",
        token="secret",
        retry_delay_seconds=0,
        transport=httpx.MockTransport(recorder),
        **kwargs,
    )


class TestPayloads:
    """Tests for payload serialization."""

    def test_activity_result_payload(self):
        started = datetime(2026, 1, 1, 10, 0, tzinfo=timezone.utc)
        ended = datetime(2026, 1, 1, 10, 2, 30, tzinfo=timezone.utc)
        result = ActivityResult(
            activity_id="number_echo",
            cognitive_domain=CognitiveDomain.WORKING_MEMORY,
            score=67,
            started_at=started,
            ended_at=ended,
            raw_score=7,
            response_time_ms=900,
            transcripts=("4 7 2",),
            turn_count=1,
            difficulty_used=DifficultyLevel.MEDIUM,
        )
        payload = ActivityResultPayload.from_result(result)

        assert payload.cognitive_domain == "working_memory"
        assert payload.difficulty_used == "medium"
        assert payload.duration_sec == 150
        assert payload.transcripts == ["4 7 2"]

    def test_summary_omits_unset_fields(self):
        body = _summary().model_dump(mode="json", exclude_none=True)
        assert body["status"] == "success"
        assert "notes" not in body
        assert body["activity_results"] == []

    def test_start_failed_truncates_message(self):
        payload = SessionStartFailedPayload.from_error(
            device_id="dev-1", error_type="LibraryError", error=RuntimeError("x" * 2000)
        )
        assert len(payload.error_message) == 500
        assert payload.timestamp

    def test_identifiers_are_fresh(self):
        first, second = create_session_identifiers(), create_session_identifiers()
        assert first != second
        assert first[0] != first[1]


class TestBackendClient:
    """Tests for BackendClient."""

    @pytest.mark.asyncio
    async def test_posts_summary_with_bearer_token(self):
        recorder = Recorder(200)
        async with _client(recorder) as client:
            assert await client.send_session_summary(_summary(notes="ok")) is True

        request = recorder.requests[0]
        assert request.url.path == SESSION_SUMMARY_PATH
        assert request.headers["Authorization"] == "Bearer secret"
        body = json.loads(request.content)
        assert body["session_id"] == "s-1"
        assert body["notes"] == "ok"

    @pytest.mark.asyncio
    async def test_posts_start_failed(self):
        recorder = Recorder(202)
        async with _client(recorder) as client:
            payload = SessionStartFailedPayload(device_id="dev-1", error_type="X", error_message="boom")
            assert await client.send_session_start_failed(payload) is True
        assert recorder.requests[0].url.path == SESSION_START_FAILED_PATH

    @pytest.mark.asyncio
    async def test_retries_server_errors(self):
        recorder = Recorder(503, 500, 200)
        async with _client(recorder, max_retries=2) as client:
            assert await client.send_session_summary(_summary()) is True
        assert len(recorder.requests) == 3

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise(self):
        recorder = Recorder(503)
        async with _client(recorder, max_retries=2) as client:
            with pytest.raises(BackendError) as exc_info:
                await client.send_session_summary(_summary())
        assert exc_info.value.status_code == 503
        assert len(recorder.requests) == 3

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self):
        recorder = Recorder(401)
        async with _client(recorder, max_retries=2) as client:
            with pytest.raises(BackendError) as exc_info:
                await client.send_session_summary(_summary())
        assert exc_info.value.status_code == 401
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_connection_errors_become_backend_errors(self):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        client = BackendClient(
            "http://backend.test", retry_delay_seconds=0, max_retries=1,
            transport=httpx.MockTransport(refuse),
        )
        with pytest.raises(BackendError):
            await client.send_session_summary(_summary())
        await client.close()

    @pytest.mark.asyncio
    async def test_unconfigured_backend_skips(self):
        client = BackendClient(None)
        assert client.is_configured is False
        assert await client.send_session_summary(_summary()) is False
