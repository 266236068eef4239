"""
Ingest backend client.

Posts the end-of-session summary and pre-session failure reports:

    POST /internal/ingest/session_summary
    POST /internal/ingest/session_start_failed

Usage:
    async with BackendClient.from_settings(settings) as backend:
        await backend.send_session_summary(payload)

When no backend URL is configured, sends are skipped with a warning.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

import httpx
from loguru import logger
from pydantic import BaseModel, Field

from coach.activity import ActivityResult
from coach.errors import BackendError
from coach.retry import with_retry

SESSION_SUMMARY_PATH = "/internal/ingest/session_summary"
SESSION_START_FAILED_PATH = "/internal/ingest/session_start_failed"
MAX_ERROR_MESSAGE_CHARS = 500


class SessionStatus(str, Enum):
    SUCCESS = "success"
    UNATTENDED = "unattended"
    EARLY_EXIT = "early_exit"
    ERROR_EXIT = "error_exit"


# ========================================
# Payload Models
# ========================================


class ActivityResultPayload(BaseModel):
    """Wire form of one ActivityResult."""

    activity_id: str
    cognitive_domain: str
    score: int
    raw_score: Optional[float] = None
    response_time_ms: Optional[int] = None
    turn_count: int = 0
    difficulty_used: str
    completed: bool = True
    skipped_reason: Optional[str] = None
    started_at: str
    ended_at: str
    duration_sec: int
    transcripts: list[str] = Field(default_factory=list)
    details: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_result(cls, result: ActivityResult) -> "ActivityResultPayload":
        return cls(
            activity_id=result.activity_id,
            cognitive_domain=result.cognitive_domain.value,
            score=result.score,
            raw_score=result.raw_score,
            response_time_ms=result.response_time_ms,
            turn_count=result.turn_count,
            difficulty_used=result.difficulty_used.value,
            completed=result.completed,
            skipped_reason=result.skipped_reason,
            started_at=result.started_at.isoformat(),
            ended_at=result.ended_at.isoformat(),
            duration_sec=result.duration_sec,
            transcripts=list(result.transcripts),
            details=dict(result.details),
        )


class DomainScorePayload(BaseModel):
    domain: str
    score: int


class SessionSummaryPayload(BaseModel):
    """The single end-of-session report."""

    session_id: str
    plan_id: str
    status: SessionStatus
    started_at: str
    ended_at: str
    duration_seconds: int
    turn_count: int
    user_external_id: Optional[str] = None
    participant_id: Optional[str] = None
    device_id: Optional[str] = None
    label: Optional[str] = None
    sentiment_summary: Optional[str] = None
    sentiment_score: Optional[float] = None
    notes: Optional[str] = None
    activity_results: list[ActivityResultPayload] = Field(default_factory=list)
    domain_scores: list[DomainScorePayload] = Field(default_factory=list)
    processing_speed_avg_ms: Optional[int] = None


class SessionStartFailedPayload(BaseModel):
    """Report for a session that never obtained an identity."""

    device_id: str
    error_type: str
    error_message: str
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    participant_id: Optional[str] = None

    @classmethod
    def from_error(
        cls,
        device_id: str,
        error_type: str,
        error: BaseException,
        participant_id: Optional[str] = None,
    ) -> "SessionStartFailedPayload":
        return cls(
            device_id=device_id,
            participant_id=participant_id,
            error_type=error_type,
            error_message=str(error)[:MAX_ERROR_MESSAGE_CHARS],
        )


def create_session_identifiers() -> tuple[str, str]:
    """Fresh (session_id, plan_id) UUID4 pair."""
    return str(uuid.uuid4()), str(uuid.uuid4())


# ========================================
# Client
# ========================================


class BackendClient:
    """
    HTTP client for the ingest endpoints.

    Transient failures (timeouts, connection errors, 5xx) are retried;
    4xx responses fail immediately. Both surface as BackendError.
    """

    def __init__(
        self,
        base_url: Optional[str],
        token: Optional[str] = None,
        timeout_seconds: float = 30.0,
        max_retries: int = 2,
        retry_delay_seconds: float = 0.5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.token = token
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings: Any) -> "BackendClient":
        retry = settings.get_retry_config()
        return cls(
            base_url=settings.backend_url,
            token=settings.ingest_token,
            timeout_seconds=settings.api_timeout_ms / 1000.0,
            max_retries=retry["max_retries"],
            retry_delay_seconds=retry["delay_seconds"],
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url)

    async def __aenter__(self) -> "BackendClient":
        self._ensure_client()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url or "",
                headers=headers,
                timeout=httpx.Timeout(self.timeout_seconds),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def send_session_summary(self, payload: SessionSummaryPayload) -> bool:
        """
        Post the session summary.

        Returns:
            True if delivered, False if skipped (no backend configured)

        Raises:
            BackendError: Rejected, or retries exhausted
        """
        return await self._post(SESSION_SUMMARY_PATH, payload, "session summary")

    async def send_session_start_failed(self, payload: SessionStartFailedPayload) -> bool:
        """Post a pre-session failure report. Same contract as send_session_summary."""
        return await self._post(SESSION_START_FAILED_PATH, payload, "session_start_failed")

    async def _post(self, path: str, payload: BaseModel, label: str) -> bool:
        if not self.is_configured:
            logger.warning(f"Skipping {label}; backend URL not configured")
            return False

        body = payload.model_dump(mode="json", exclude_none=True)
        client = self._ensure_client()

        async def attempt() -> httpx.Response:
            response = await client.post(path, json=body)
            response.raise_for_status()
            return response

        logger.info(f"POST {label} -> {self.base_url}{path}")
        logger.debug(f"payload: {body}")
        try:
            response = await with_retry(
                attempt,
                label,
                max_retries=self.max_retries,
                delay_seconds=self.retry_delay_seconds,
            )
        except httpx.HTTPStatusError as e:
            raise BackendError(
                f"{label} rejected: {e.response.status_code} {e.response.text[:200]}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise BackendError(f"{label} failed: {e}") from e

        logger.info(f"POST {label} succeeded ({response.status_code})")
        return True
