"""
Activity, result and plan types.

An Activity is one exercise definition from the content library. Handlers
turn an Activity into an ActivityResult; the planner bundles Activities
into a SessionPlan.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

from coach.domains import CognitiveDomain


class ActivityType(str, Enum):
    """Exercise family tag; selects the handler that runs the activity."""
    # Structured exercises (built-in scoring)
    DIGIT_SPAN = "digit_span"
    WORD_LIST = "word_list"
    VERBAL_FLUENCY = "verbal_fluency"
    GO_NO_GO = "go_no_go"
    SERIAL_ARITHMETIC = "serial_arithmetic"
    TASK_SWITCHING = "task_switching"
    INSTRUCTION_FOLLOWING = "instruction_following"
    N_BACK = "n_back"
    STORY_RECALL = "story_recall"
    # Conversational exercises
    CONVERSATION = "conversation"
    GUIDED_RECALL = "guided_recall"
    EMOTION_RECOGNITION = "emotion_recognition"
    PERSPECTIVE_TAKING = "perspective_taking"
    # Session flow
    ORIENTATION = "orientation"
    CLOSING = "closing"


CONVERSATIONAL_TYPES = frozenset({
    ActivityType.CONVERSATION,
    ActivityType.GUIDED_RECALL,
    ActivityType.EMOTION_RECOGNITION,
    ActivityType.PERSPECTIVE_TAKING,
})

SESSION_FLOW_TYPES = frozenset({ActivityType.ORIENTATION, ActivityType.CLOSING})


def is_structured_activity(activity_type: ActivityType) -> bool:
    return activity_type not in CONVERSATIONAL_TYPES and activity_type not in SESSION_FLOW_TYPES


class DifficultyLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    ADAPTIVE = "adaptive"

    @classmethod
    def parse(cls, value: str) -> "DifficultyLevel":
        """Parse a difficulty, accepting the legacy easy/hard spellings."""
        legacy = {"easy": cls.LOW, "hard": cls.HIGH}
        value = str(value).strip().lower()
        return legacy.get(value) or cls(value)


class ScoringMetric(str, Enum):
    ACCURACY = "accuracy"      # correct / total
    COUNT = "count"            # number of items produced or recalled
    LATENCY = "latency"        # response time, lower is better
    SPAN = "span"              # longest sequence reproduced
    COMPOSITE = "composite"    # accuracy blended with speed
    LLM_JUDGED = "llm_judged"  # engagement heuristics for dialogue


@dataclass(frozen=True)
class ScoringConfig:
    """How an activity's raw signal maps onto 0-100."""
    metric: ScoringMetric = ScoringMetric.ACCURACY
    capture_timing: bool = False
    min_expected: float | None = None
    max_expected: float | None = None

    def bounds(self, default_min: float, default_max: float) -> tuple[float, float]:
        """Normalization bounds, falling back to the handler's defaults."""
        low = self.min_expected if self.min_expected is not None else default_min
        high = self.max_expected if self.max_expected is not None else default_max
        return low, high

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ScoringConfig":
        data = data or {}
        normalization = data.get("normalization") or {}
        return cls(
            metric=ScoringMetric(data.get("metric", "accuracy")),
            capture_timing=bool(data.get("capture_timing", False)),
            min_expected=normalization.get("min_expected"),
            max_expected=normalization.get("max_expected"),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "metric": self.metric.value,
            "capture_timing": self.capture_timing,
        }
        if self.min_expected is not None or self.max_expected is not None:
            data["normalization"] = {
                "min_expected": self.min_expected,
                "max_expected": self.max_expected,
            }
        return data


@dataclass(frozen=True)
class Activity:
    """
    A single exercise definition drawn from the content library.

    Immutable once loaded. The planner may hand out a clone with a concrete
    difficulty (see with_difficulty); the library copy is never touched.
    """
    id: str
    type: ActivityType
    cognitive_domain: CognitiveDomain
    difficulty: DifficultyLevel = DifficultyLevel.MEDIUM
    difficulty_params: dict[str, Any] = field(default_factory=dict)
    script: tuple[str, ...] = ()
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    duration_min: float = 2

    # Descriptive content
    title: str = ""
    description: str = ""
    instructions: str = ""
    goal: str = ""
    tags: tuple[str, ...] = ()
    version: int = 1

    # Per-level parameter overrides, keyed by DifficultyLevel value
    difficulty_levels: dict[str, dict[str, Any]] = field(default_factory=dict)
    # Delayed-recall pairing (harvest -> plant)
    paired_activity_id: str | None = None
    secondary_domains: tuple[CognitiveDomain, ...] = ()

    def param(self, name: str, default: Any = None) -> Any:
        """Read one exercise tuning parameter."""
        value = self.difficulty_params.get(name)
        return default if value is None else value

    def line(self, index: int, default: str = "") -> str:
        """Script line by index (negative allowed), or default when absent."""
        try:
            return self.script[index]
        except IndexError:
            return default

    @property
    def closing_line(self) -> str:
        return self.line(-1)

    def with_difficulty(self, level: DifficultyLevel) -> "Activity":
        """Clone with a concrete difficulty and that level's parameter overrides."""
        params = dict(self.difficulty_params)
        params.update(self.difficulty_levels.get(level.value, {}))
        return replace(self, difficulty=level, difficulty_params=params)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Activity":
        """Build from a content-library record. Raises ValueError/KeyError on bad input."""
        activity_id = str(data["id"]).strip()
        if not activity_id:
            raise ValueError("activity id must not be empty")
        return cls(
            id=activity_id,
            type=ActivityType(data["type"]),
            cognitive_domain=CognitiveDomain(data["cognitive_domain"]),
            difficulty=DifficultyLevel.parse(data.get("difficulty", "medium")),
            difficulty_params=dict(data.get("difficulty_params") or {}),
            script=tuple(str(line) for line in data.get("script", [])),
            scoring=ScoringConfig.from_dict(data.get("scoring")),
            duration_min=float(data.get("duration_min", 2)),
            title=data.get("title", ""),
            description=data.get("description", ""),
            instructions=data.get("instructions", ""),
            goal=data.get("goal", ""),
            tags=tuple(data.get("tags", [])),
            version=int(data.get("version", 1)),
            difficulty_levels={
                DifficultyLevel.parse(k).value: dict(v)
                for k, v in (data.get("difficulty_levels") or {}).items()
            },
            paired_activity_id=data.get("paired_activity_id"),
            secondary_domains=tuple(
                CognitiveDomain(d) for d in data.get("secondary_domains", [])
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "cognitive_domain": self.cognitive_domain.value,
            "difficulty": self.difficulty.value,
            "difficulty_params": dict(self.difficulty_params),
            "script": list(self.script),
            "scoring": self.scoring.to_dict(),
            "duration_min": self.duration_min,
            "title": self.title,
        }


@dataclass(frozen=True)
class ActivityResult:
    """Normalized outcome of running one Activity through its handler."""
    activity_id: str
    cognitive_domain: CognitiveDomain
    score: int                      # 0-100 normalized
    started_at: datetime
    ended_at: datetime
    raw_score: float | None = None  # exercise-native unit (span, count, ...)
    response_time_ms: int | None = None
    transcripts: tuple[str, ...] = ()
    turn_count: int = 0
    difficulty_used: DifficultyLevel = DifficultyLevel.MEDIUM
    completed: bool = True
    skipped_reason: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def duration_sec(self) -> int:
        return round((self.ended_at - self.started_at).total_seconds())

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "activity_id": self.activity_id,
            "cognitive_domain": self.cognitive_domain.value,
            "score": self.score,
            "raw_score": self.raw_score,
            "response_time_ms": self.response_time_ms,
            "transcripts": list(self.transcripts),
            "turn_count": self.turn_count,
            "difficulty_used": self.difficulty_used.value,
            "completed": self.completed,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat(),
            "duration_sec": self.duration_sec,
        }
        if self.skipped_reason:
            data["skipped_reason"] = self.skipped_reason
        if self.details:
            data["details"] = dict(self.details)
        return data


@dataclass(frozen=True)
class SessionPlan:
    """Ordered activities selected for one session."""
    session_id: str
    plan_id: str
    activities: tuple[Activity, ...]
    target_domains: tuple[CognitiveDomain, ...]
    estimated_duration_min: float
    created_at: datetime

    def __len__(self) -> int:
        return len(self.activities)

    @property
    def activity_ids(self) -> list[str]:
        return [a.id for a in self.activities]
