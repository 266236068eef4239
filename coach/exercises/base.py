"""
Base protocol and types for exercise handlers.

Handlers never touch audio or the network directly. They drive turns
through an ExerciseContext, which wraps whatever VoiceIO the runner was
given (live audio + OpenAI, or a scripted participant) together with the
session's shared SessionState.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Protocol

from loguru import logger

from coach.activity import Activity, ActivityResult, DifficultyLevel
from coach.scoring import average

if TYPE_CHECKING:
    from loguru import Logger

MAX_TURNS_PER_ACTIVITY = 3

EncourageCallback = Callable[[], Awaitable[None]]


@dataclass
class ListenResult:
    """Outcome of one listen: best-effort transcript ("" when nothing was heard)."""
    transcript: str = ""
    latency_ms: Optional[int] = None  # time to first speech

    @property
    def has_speech(self) -> bool:
        return bool(self.transcript.strip())


@dataclass
class BriefListenResult(ListenResult):
    has_response: bool = False


@dataclass
class LLMReply:
    text: str
    should_follow_up: bool = False


@dataclass
class SessionState:
    """
    Scratch shared between the activities of one session.

    planted_words is written by the word-list plant phase and read by the
    harvest phase later in the same session.
    """
    planted_words: Optional[list[str]] = None

    def update(self, **changes: Any) -> None:
        """Merge changes into the state."""
        known = {f.name for f in fields(self)}
        for name, value in changes.items():
            if name not in known:
                raise AttributeError(f"Unknown session state field: {name}")
            setattr(self, name, value)


class VoiceIO(Protocol):
    """The I/O capability set handlers are driven through."""

    def reset_conversation(self) -> None:
        """Forget dialogue history from any previous session."""
        ...

    async def speak(self, text: str) -> None:
        """Synthesize and play text; returns when playback completes."""
        ...

    async def listen(self) -> ListenResult:
        """Record until silence or the window cap, then transcribe."""
        ...

    async def listen_brief(self, timeout_ms: int) -> BriefListenResult:
        """Short fixed window for single-word responses."""
        ...

    async def listen_for_duration(
        self, seconds: float, encourage: Optional[EncourageCallback] = None
    ) -> ListenResult:
        """Long-form timed listen, optionally calling encourage mid-way."""
        ...

    async def generate_response(
        self, user_message: str, activity: Activity, turn_number: int
    ) -> LLMReply:
        """Reply text plus whether to ask a follow-up."""
        ...


class ExerciseContext:
    """What a handler sees: voice I/O, session state and a bound logger."""

    def __init__(self, io: VoiceIO, state: SessionState, activity_id: str = "session"):
        self.io = io
        self.state = state
        self.log: "Logger" = logger.bind(activity=activity_id)

    def for_activity(self, activity: Activity) -> "ExerciseContext":
        return ExerciseContext(self.io, self.state, activity.id)

    async def speak(self, text: str) -> None:
        if text and text.strip():
            await self.io.speak(text)

    async def listen(self) -> ListenResult:
        return await self.io.listen()

    async def listen_brief(self, timeout_ms: int = 2000) -> BriefListenResult:
        return await self.io.listen_brief(timeout_ms)

    async def listen_for_duration(
        self, seconds: float, encourage: Optional[EncourageCallback] = None
    ) -> ListenResult:
        return await self.io.listen_for_duration(seconds, encourage)

    async def generate_response(self, user_message: str, activity: Activity, turn_number: int) -> LLMReply:
        return await self.io.generate_response(user_message, activity, turn_number)

    def get_session_state(self) -> SessionState:
        return self.state

    def set_session_state(self, **changes: Any) -> None:
        self.state.update(**changes)


class ExerciseHandler(Protocol):
    """Protocol for exercise family handlers."""

    async def run(self, activity: Activity, ctx: ExerciseContext) -> ActivityResult:
        """Drive the activity's turns and return its normalized result."""
        ...


class ActivityRun:
    """
    Collects the turns of one activity and builds its ActivityResult.

    Every listen goes through record(), so transcripts stay in spoken order
    and turn_count matches the number of listens.
    """

    def __init__(self, activity: Activity):
        self.activity = activity
        self.started_at = datetime.now(timezone.utc)
        self.transcripts: list[str] = []
        self.latencies: list[int] = []
        self.turn_count = 0

    def record(self, response: ListenResult) -> str:
        self.transcripts.append(response.transcript)
        if response.latency_ms is not None:
            self.latencies.append(response.latency_ms)
        self.turn_count += 1
        return response.transcript

    @property
    def average_latency_ms(self) -> Optional[int]:
        return average(self.latencies)

    def finish(
        self,
        score: int,
        raw_score: Optional[float] = None,
        response_time_ms: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
        use_average_latency: bool = True,
    ) -> ActivityResult:
        if response_time_ms is None and use_average_latency:
            response_time_ms = self.average_latency_ms
        difficulty = self.activity.difficulty
        return ActivityResult(
            activity_id=self.activity.id,
            cognitive_domain=self.activity.cognitive_domain,
            score=max(0, min(100, int(score))),
            started_at=self.started_at,
            ended_at=datetime.now(timezone.utc),
            raw_score=raw_score,
            response_time_ms=response_time_ms,
            transcripts=tuple(self.transcripts),
            turn_count=self.turn_count,
            difficulty_used=DifficultyLevel.MEDIUM if difficulty == DifficultyLevel.ADAPTIVE else difficulty,
            details=details or {},
        )


def fill(line: str, **values: Any) -> str:
    """Substitute {name} placeholders in a script line ("[X]" is the legacy {count})."""
    for name, value in values.items():
        line = line.replace("{" + name + "}", str(value))
    if "count" in values:
        line = line.replace("[X]", str(values["count"]))
    return line
