"""
Session runner.

Drives one coaching session end to end:

    Init -> Readiness -> Activities -> Closing -> Summary

- Readiness: intro, "are you ready?", up to three listens. Silence
  throughout ends the session as unattended; a stop phrase ends it as
  early_exit.
- Activities: plan order; each activity runs inside its own error boundary
  so one failing exercise never sinks the session. A stop phrase in an
  activity's transcripts ends the loop.
- Summary: domain scores (mean per domain), average response time, status.

Exactly one summary is delivered per session, whichever way it ends. The
spoken phases run under max_session_seconds and only decide the status;
the summary is built and sent afterwards under its own
summary_timeout_seconds. All sends go through _deliver_summary, which flips
_summary_sent before the first attempt; a fallback in the top-level finally
sends error_exit if the normal flow never got that far. If the voice I/O or
the plan (and so the session identity) cannot be created,
session_start_failed is reported instead.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional, Protocol

from loguru import logger

from coach.activity import ActivityResult, SessionPlan
from coach.backend import (
    ActivityResultPayload,
    DomainScorePayload,
    SessionStartFailedPayload,
    SessionStatus,
    SessionSummaryPayload,
)
from coach.domains import CognitiveDomain
from coach.exercises import run_activity
from coach.exercises.base import ExerciseContext, SessionState, VoiceIO
from coach.library import load_library
from coach.planner import AdaptivePlanner
from coach.profile import ProfileStore, UserProfile, update_profile_with_results
from coach.stop_phrases import check_stop_phrase, find_stop_phrase

INTRO_MESSAGE = "Hello! I'm Coco, your cognitive companion. I have some fun activities planned for us today."
READINESS_PROMPT = "Are you ready to begin?"
READINESS_RETRY_PROMPTS = [
    "I'm here when you're ready. Just say hello to begin.",
    "Take your time. Let me know when you'd like to start.",
]
READY_MESSAGE = "Great! Let's get started."
UNATTENDED_GOODBYE = "I'll be here when you're ready. Take care!"
STOP_GOODBYE = "No problem. Take care, and I'll be here when you're ready!"
CLOSING_MESSAGE = "Thank you for spending this time with me. You did wonderful work today!"
EARLY_CLOSING_MESSAGE = "It was lovely chatting with you. Take care!"
ERROR_GOODBYE = "I'm sorry, we need to stop here for today. Thank you for your time, and take care!"

MAX_READINESS_ATTEMPTS = 3

EXIT_CODES: dict[SessionStatus, int] = {
    SessionStatus.SUCCESS: 0,
    SessionStatus.ERROR_EXIT: 1,
    SessionStatus.UNATTENDED: 2,
    SessionStatus.EARLY_EXIT: 3,
}


def exit_code_for(status: SessionStatus) -> int:
    return EXIT_CODES[status]


class SummaryBackend(Protocol):
    async def send_session_summary(self, payload: SessionSummaryPayload) -> bool: ...

    async def send_session_start_failed(self, payload: SessionStartFailedPayload) -> bool: ...


class PlanSource(Protocol):
    def build_adaptive_plan(self, profile: Optional[UserProfile] = None) -> SessionPlan: ...


@dataclass(frozen=True)
class SessionIdentity:
    """Who and where a session runs for."""
    device_id: str = "unknown-device"
    participant_id: Optional[str] = None
    user_external_id: Optional[str] = None
    label: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: Any) -> "SessionIdentity":
        return cls(
            device_id=settings.device_id,
            participant_id=settings.participant_id,
            user_external_id=settings.resolved_user_external_id,
        )


@dataclass
class SessionResult:
    """What the runner reports back to its caller."""
    status: SessionStatus
    session_id: Optional[str] = None
    plan_id: Optional[str] = None
    activity_results: list[ActivityResult] = field(default_factory=list)
    domain_scores: dict[CognitiveDomain, int] = field(default_factory=dict)
    processing_speed_avg_ms: Optional[int] = None
    duration_sec: int = 0
    utterance_count: int = 0
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    summary_sent: bool = False
    error: Optional[str] = None

    @property
    def exit_code(self) -> int:
        return exit_code_for(self.status)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "session_id": self.session_id,
            "plan_id": self.plan_id,
            "activity_results": [r.to_dict() for r in self.activity_results],
            "domain_scores": {d.value: s for d, s in self.domain_scores.items()},
            "processing_speed_avg_ms": self.processing_speed_avg_ms,
            "duration_sec": self.duration_sec,
            "utterance_count": self.utterance_count,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "summary_sent": self.summary_sent,
            "error": self.error,
        }


# =============================================================================
# Aggregation
# =============================================================================


def aggregate_domain_scores(results: Iterable[ActivityResult]) -> dict[CognitiveDomain, int]:
    """Mean score per domain, in first-seen order."""
    buckets: dict[CognitiveDomain, list[int]] = {}
    for result in results:
        buckets.setdefault(result.cognitive_domain, []).append(result.score)
    return {domain: round(sum(scores) / len(scores)) for domain, scores in buckets.items()}


def average_response_time(results: Iterable[ActivityResult]) -> Optional[int]:
    latencies = [r.response_time_ms for r in results if r.response_time_ms]
    if not latencies:
        return None
    return round(sum(latencies) / len(latencies))


def derive_status(utterance_count: int, stopped_early: bool) -> SessionStatus:
    if utterance_count == 0:
        return SessionStatus.UNATTENDED
    if stopped_early:
        return SessionStatus.EARLY_EXIT
    return SessionStatus.SUCCESS


# =============================================================================
# Runner
# =============================================================================


class SessionRunner:
    """
    Runs one session against a VoiceIO and reports it to a backend.

    Pass either a ready VoiceIO or an io_factory. A factory is called inside
    the start-up error boundary, so failing to open audio or the speech
    services is reported as session_start_failed.

    Usage:
        runner = SessionRunner(io, backend, identity=SessionIdentity.from_settings(settings))
        result = await runner.run()
        sys.exit(result.exit_code)
    """

    def __init__(
        self,
        io: Optional[VoiceIO],
        backend: SummaryBackend,
        identity: Optional[SessionIdentity] = None,
        planner: Optional[PlanSource] = None,
        profile_store: Optional[ProfileStore] = None,
        library_path: Optional[str] = None,
        max_session_seconds: float = 1800,
        summary_timeout_seconds: float = 15.0,
        io_factory: Optional[Callable[[], VoiceIO]] = None,
    ):
        if io is None and io_factory is None:
            raise ValueError("SessionRunner needs io or io_factory")
        self.io = io
        self.io_factory = io_factory
        self.backend = backend
        self.identity = identity or SessionIdentity()
        self.planner = planner
        self.profile_store = profile_store
        self.library_path = library_path
        self.max_session_seconds = max_session_seconds
        self.summary_timeout_seconds = summary_timeout_seconds
        self._reset()

    def _reset(self) -> None:
        self._results: list[ActivityResult] = []
        self._utterances = 0
        self._stopped_early = False
        self._summary_sent = False
        self._delivered = False
        self._error: Optional[str] = None
        self._started_at = datetime.now(timezone.utc)
        self._started_mono = time.monotonic()

    # ---------------------------------------------------------------------
    # Top level
    # ---------------------------------------------------------------------

    async def run(self) -> SessionResult:
        self._reset()
        state = SessionState()

        profile = self._load_profile()
        try:
            io = self._open_io()
            io.reset_conversation()
            plan = self._build_plan(profile)
        except Exception as e:
            logger.exception("Could not start the session")
            self._error = f"{type(e).__name__}: {e}"
            await self._report_start_failure(e)
            return SessionResult(
                status=SessionStatus.ERROR_EXIT,
                started_at=self._started_at,
                ended_at=datetime.now(timezone.utc),
                duration_sec=self._elapsed_seconds(),
                error=self._error,
            )

        logger.info("=" * 40)
        logger.info("  COCO SESSION START")
        logger.info(f"  Session: {plan.session_id[:8]}...")
        logger.info("=" * 40)
        logger.info(f"Plan: {' -> '.join(plan.activity_ids)}")

        try:
            try:
                status, notes = await asyncio.wait_for(
                    self._run_session(io, plan, state), timeout=self.max_session_seconds
                )
            except Exception as e:
                if isinstance(e, asyncio.TimeoutError):
                    notes = f"Session exceeded {self.max_session_seconds}s"
                else:
                    notes = f"{type(e).__name__}: {e}"
                logger.exception(f"Session failed: {notes}")
                self._error = notes
                status = SessionStatus.ERROR_EXIT
                await self._say_goodbye_after_error(io)
            # The summary is sent outside the session time limit, under its own timeout
            return await self._finish(plan, status, notes=notes)
        finally:
            if not self._summary_sent:
                logger.warning("Session ended without a summary; sending error_exit fallback")
                await self._deliver_summary(
                    self._build_payload(plan, SessionStatus.ERROR_EXIT, notes=self._error or "fallback")
                )

    def _open_io(self) -> VoiceIO:
        if self.io is None:
            if self.io_factory is None:
                raise ValueError("SessionRunner needs io or io_factory")
            self.io = self.io_factory()
        return self.io

    async def _run_session(
        self, io: VoiceIO, plan: SessionPlan, state: SessionState
    ) -> tuple[SessionStatus, Optional[str]]:
        """Speak the session through; returns the terminal status and notes, sends nothing."""
        ctx = ExerciseContext(io, state)

        await ctx.speak(INTRO_MESSAGE)
        await ctx.speak(READINESS_PROMPT)
        readiness = await self._check_readiness(ctx)

        if readiness == "stop":
            await ctx.speak(STOP_GOODBYE)
            return SessionStatus.EARLY_EXIT, None
        if readiness == "absent":
            await ctx.speak(UNATTENDED_GOODBYE)
            return SessionStatus.UNATTENDED, None

        await ctx.speak(READY_MESSAGE)
        await self._run_activities(plan, ctx)

        if self._stopped_early:
            await ctx.speak(EARLY_CLOSING_MESSAGE)
        elif self._results:
            await ctx.speak(CLOSING_MESSAGE)

        return derive_status(self._utterances, self._stopped_early), None

    # ---------------------------------------------------------------------
    # Phases
    # ---------------------------------------------------------------------

    async def _check_readiness(self, ctx: ExerciseContext) -> str:
        """'ready', 'stop' or 'absent'."""
        for attempt in range(1, MAX_READINESS_ATTEMPTS + 1):
            response = await ctx.listen()
            if response.has_speech:
                logger.info(f"Readiness response: \"{response.transcript}\"")
                if check_stop_phrase(response.transcript):
                    return "stop"
                self._utterances += 1
                return "ready"

            logger.info(f"Readiness: no response (attempt {attempt}/{MAX_READINESS_ATTEMPTS})")
            if attempt < MAX_READINESS_ATTEMPTS:
                await ctx.speak(READINESS_RETRY_PROMPTS[min(attempt, len(READINESS_RETRY_PROMPTS)) - 1])
        return "absent"

    async def _run_activities(self, plan: SessionPlan, ctx: ExerciseContext) -> None:
        total = len(plan.activities)
        for index, activity in enumerate(plan.activities, start=1):
            logger.info(f"--- Activity {index}/{total}: {activity.title or activity.id} ({activity.id}) ---")
            try:
                result = await run_activity(activity, ctx)
            except Exception:
                logger.exception(f"Activity {activity.id} failed; moving on")
                continue

            self._results.append(result)
            self._utterances += result.turn_count
            logger.info(f"Activity {activity.id}: score={result.score} turns={result.turn_count}")

            stop = find_stop_phrase(result.transcripts)
            if stop is not None:
                logger.info(f"Stop phrase heard: \"{stop}\"")
                self._stopped_early = True
                break

    async def _say_goodbye_after_error(self, io: VoiceIO) -> None:
        try:
            await asyncio.wait_for(io.speak(ERROR_GOODBYE), timeout=self.summary_timeout_seconds)
        except Exception as e:
            logger.warning(f"Could not speak goodbye after error: {e}")

    # ---------------------------------------------------------------------
    # Summary
    # ---------------------------------------------------------------------

    async def _finish(
        self, plan: SessionPlan, status: SessionStatus, notes: Optional[str] = None
    ) -> SessionResult:
        payload = self._build_payload(plan, status, notes=notes)
        self._log_summary(status)
        await self._deliver_summary(payload)

        if status == SessionStatus.SUCCESS:
            self._update_profile()

        return SessionResult(
            status=status,
            session_id=plan.session_id,
            plan_id=plan.plan_id,
            activity_results=list(self._results),
            domain_scores=aggregate_domain_scores(self._results),
            processing_speed_avg_ms=average_response_time(self._results),
            duration_sec=payload.duration_seconds,
            utterance_count=payload.turn_count,
            started_at=self._started_at,
            ended_at=datetime.fromisoformat(payload.ended_at),
            summary_sent=self._delivered,
            error=self._error,
        )

    def _build_payload(
        self, plan: SessionPlan, status: SessionStatus, notes: Optional[str] = None
    ) -> SessionSummaryPayload:
        neutral = status in (SessionStatus.UNATTENDED, SessionStatus.ERROR_EXIT)
        return SessionSummaryPayload(
            session_id=plan.session_id,
            plan_id=plan.plan_id,
            status=status,
            user_external_id=self.identity.user_external_id,
            participant_id=self.identity.participant_id,
            device_id=self.identity.device_id,
            label=self.identity.label,
            started_at=self._started_at.isoformat(),
            ended_at=datetime.now(timezone.utc).isoformat(),
            duration_seconds=self._elapsed_seconds(),
            turn_count=self._utterances,
            sentiment_summary="neutral" if neutral else "positive",
            sentiment_score=0.5 if neutral else 0.75,
            notes=notes,
            activity_results=[ActivityResultPayload.from_result(r) for r in self._results],
            domain_scores=[
                DomainScorePayload(domain=d.value, score=s)
                for d, s in aggregate_domain_scores(self._results).items()
            ],
            processing_speed_avg_ms=average_response_time(self._results),
        )

    async def _deliver_summary(self, payload: SessionSummaryPayload) -> None:
        """The only place a summary is sent. Second calls are no-ops."""
        if self._summary_sent:
            logger.debug("Summary already sent; ignoring")
            return
        self._summary_sent = True

        try:
            self._delivered = await asyncio.wait_for(
                self.backend.send_session_summary(payload),
                timeout=self.summary_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.error(f"Session summary not confirmed within {self.summary_timeout_seconds}s")
        except Exception as e:
            logger.error(f"Session summary delivery failed: {e}")

    async def _report_start_failure(self, error: BaseException) -> None:
        payload = SessionStartFailedPayload.from_error(
            device_id=self.identity.device_id,
            participant_id=self.identity.participant_id,
            error_type=type(error).__name__,
            error=error,
        )
        try:
            await asyncio.wait_for(
                self.backend.send_session_start_failed(payload),
                timeout=self.summary_timeout_seconds,
            )
        except Exception as e:
            logger.error(f"Failed to send session_start_failed: {e}")

    def _log_summary(self, status: SessionStatus) -> None:
        logger.info("=" * 40)
        logger.info("  SESSION COMPLETE")
        logger.info("=" * 40)
        logger.info(f"Duration: {self._elapsed_seconds()}s")
        logger.info(f"Utterances: {self._utterances}")
        logger.info(f"Activities: {len(self._results)}")
        logger.info(f"Status: {status.value}")

    # ---------------------------------------------------------------------
    # Plan & profile
    # ---------------------------------------------------------------------

    def _build_plan(self, profile: Optional[UserProfile]) -> SessionPlan:
        if self.planner is None:
            self.planner = AdaptivePlanner(load_library(self.library_path))
        return self.planner.build_adaptive_plan(profile)

    def _load_profile(self) -> Optional[UserProfile]:
        user_id = self.identity.user_external_id
        if not self.profile_store or not user_id:
            return None
        try:
            return self.profile_store.load_or_create(user_id, self.identity.participant_id or "1")
        except OSError as e:
            logger.warning(f"Could not load profile {user_id}: {e}")
            return None

    def _update_profile(self) -> None:
        user_id = self.identity.user_external_id
        if not self.profile_store or not user_id or not self._results:
            return
        try:
            profile = self.profile_store.load_or_create(user_id, self.identity.participant_id or "1")
            self.profile_store.save(update_profile_with_results(profile, self._results))
            logger.info(f"Profile updated: {user_id}")
        except Exception as e:
            logger.warning(f"Failed to update profile {user_id}: {e}")

    def _elapsed_seconds(self) -> int:
        return round(time.monotonic() - self._started_mono)
