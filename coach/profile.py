"""
Participant profiles.

A profile keeps per-domain score history across sessions. The planner
reads it to prioritise domains and pick difficulties; the session runner
folds a successful session's results back into it.

Profiles are stored as JSON files in ~/.coco/profiles/ (configurable).
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional

from loguru import logger

from coach.activity import ActivityResult, DifficultyLevel
from coach.domains import TRAINABLE_DOMAINS, CognitiveDomain, map_legacy_domain
from coach.scoring import calculate_trend

PROFILE_VERSION = 2
HISTORY_WINDOW = 10
STALE_SESSION_COUNT = 3


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class DomainScore:
    """Score tracking for a single cognitive domain."""

    domain: CognitiveDomain
    current_score: int = 50
    baseline_score: int = 50
    improvement: int = 0
    trend: str = "stable"  # 'improving', 'stable', 'declining'
    session_count: int = 0
    last_activity_scores: list[int] = field(default_factory=list)
    last_updated: str = field(default_factory=_now)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["domain"] = self.domain.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "DomainScore":
        data = dict(data)
        data["domain"] = map_legacy_domain(data["domain"])
        return cls(**data)


@dataclass
class UserProfile:
    """Serializable participant profile."""

    user_external_id: str
    participant_id: str
    domains: list[DomainScore]
    total_sessions: int = 0
    preferred_difficulty: str = DifficultyLevel.LOW.value
    processing_speed_baseline_ms: Optional[int] = None
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)
    version: int = PROFILE_VERSION

    def get_domain(self, domain: CognitiveDomain) -> Optional[DomainScore]:
        return next((d for d in self.domains if d.domain == domain), None)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["domains"] = [d.to_dict() for d in self.domains]
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "UserProfile":
        data = dict(data)
        data["domains"] = [DomainScore.from_dict(d) for d in data.get("domains", [])]
        data["version"] = PROFILE_VERSION
        data["preferred_difficulty"] = DifficultyLevel.parse(
            data.get("preferred_difficulty", "low")
        ).value
        return cls(**data)


def create_default_profile(user_external_id: str, participant_id: str) -> UserProfile:
    """New profile with every trainable domain at a neutral 50."""
    return UserProfile(
        user_external_id=user_external_id,
        participant_id=participant_id,
        domains=[DomainScore(domain=d) for d in TRAINABLE_DOMAINS],
    )


def update_domain_score(profile: UserProfile, domain: CognitiveDomain, new_score: int) -> UserProfile:
    """Return a copy of profile with new_score folded into domain's history."""
    now = _now()
    domains = []
    for entry in profile.domains:
        if entry.domain != domain:
            domains.append(entry)
            continue
        history = (entry.last_activity_scores + [new_score])[-HISTORY_WINDOW:]
        recent = round(sum(history) / len(history))
        domains.append(replace(
            entry,
            current_score=recent,
            improvement=recent - entry.baseline_score,
            trend=calculate_trend(history),
            session_count=entry.session_count + 1,
            last_activity_scores=history,
            last_updated=now,
        ))
    return replace(profile, domains=domains, updated_at=now)


def get_priority_domains(profile: UserProfile) -> list[CognitiveDomain]:
    """Declining domains first, then rarely exercised ones, then the rest."""
    declining = [d.domain for d in profile.domains if d.trend == "declining"]
    stale = [
        d.domain for d in profile.domains
        if d.session_count < STALE_SESSION_COUNT and d.domain not in declining
    ]
    remaining = [d for d in TRAINABLE_DOMAINS if d not in declining and d not in stale]
    return [d for d in declining + stale + remaining if d.is_trainable]


def get_difficulty_for_domain(profile: UserProfile, domain: CognitiveDomain) -> DifficultyLevel:
    """Higher historical scores map to harder difficulty."""
    entry = profile.get_domain(domain)
    score = entry.current_score if entry else 50
    if score < 40:
        return DifficultyLevel.LOW
    if score < 70:
        return DifficultyLevel.MEDIUM
    return DifficultyLevel.HIGH


def update_profile_with_results(profile: UserProfile, results: Iterable[ActivityResult]) -> UserProfile:
    """Average this session's scores per trainable domain and fold them in."""
    per_domain: dict[CognitiveDomain, list[int]] = {}
    for result in results:
        if result.cognitive_domain.is_trainable:
            per_domain.setdefault(result.cognitive_domain, []).append(result.score)

    updated = profile
    for domain, scores in per_domain.items():
        if updated.get_domain(domain) is None:
            updated = replace(updated, domains=updated.domains + [DomainScore(domain=domain)])
        updated = update_domain_score(updated, domain, round(sum(scores) / len(scores)))

    return replace(updated, total_sessions=updated.total_sessions + 1, updated_at=_now())


class ProfileStore:
    """
    Manages profile persistence.

    Profiles are stored as JSON files with naming: {user_external_id}.json
    """

    def __init__(self, profiles_dir: Path | str):
        self.profiles_dir = Path(profiles_dir)

    def _path(self, user_external_id: str) -> Path:
        return self.profiles_dir / f"{user_external_id}.json"

    def load(self, user_external_id: str) -> Optional[UserProfile]:
        """Load a profile, or None if missing or unreadable."""
        filepath = self._path(user_external_id)
        if not filepath.exists():
            return None

        try:
            with open(filepath, "r", encoding="utf-8") as f:
                return UserProfile.from_dict(json.load(f))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring unreadable profile {filepath}: {e}")
            return None

    def save(self, profile: UserProfile) -> Path:
        self.profiles_dir.mkdir(parents=True, exist_ok=True)
        filepath = self._path(profile.user_external_id)
        with open(filepath, "w", encoding="utf-8") as f:
            json.dump(profile.to_dict(), f, indent=2)
        return filepath

    def load_or_create(self, user_external_id: str, participant_id: str) -> UserProfile:
        existing = self.load(user_external_id)
        if existing:
            return existing

        profile = create_default_profile(user_external_id, participant_id)
        self.save(profile)
        return profile
