"""
Adaptive Session Planner.

Builds a session plan by walking a fixed slot structure:

1. Orientation (1 min)
2. Word Garden - Plant (2 min)
3. Domain block 1 (3 min) - attention, working memory, processing speed
4. Domain block 2 (3 min) - language, executive function
5. Domain block 3 (2 min) - social cognition
6. Word Garden - Harvest (2 min)
7. Closing (2 min)

Domain blocks pick the participant's highest-priority unused domain from
their pool, then a random not-yet-used activity for that domain.
"""
from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import Optional

from loguru import logger

from coach.activity import Activity, DifficultyLevel, SessionPlan
from coach.backend import create_session_identifiers
from coach.domains import TRAINABLE_DOMAINS, CognitiveDomain
from coach.errors import PlannerConfigError
from coach.library import ContentLibrary, load_library
from coach.profile import UserProfile, get_difficulty_for_domain, get_priority_domains

WORD_GARDEN_PLANT_ID = "word_garden_plant"
WORD_GARDEN_HARVEST_ID = "word_garden_harvest"


@dataclass(frozen=True)
class SessionSlot:
    """One position in the session structure."""
    kind: str  # 'fixed' or 'domain'
    duration_min: float
    activity_id: Optional[str] = None
    domain: Optional[CognitiveDomain] = None
    domain_pool: tuple[CognitiveDomain, ...] = ()


SESSION_STRUCTURE: tuple[SessionSlot, ...] = (
    SessionSlot("fixed", 1, domain=CognitiveDomain.ORIENTATION),
    SessionSlot("fixed", 2, activity_id=WORD_GARDEN_PLANT_ID),
    SessionSlot("domain", 3, domain_pool=(
        CognitiveDomain.COMPLEX_ATTENTION,
        CognitiveDomain.WORKING_MEMORY,
        CognitiveDomain.PROCESSING_SPEED,
    )),
    SessionSlot("domain", 3, domain_pool=(
        CognitiveDomain.LANGUAGE,
        CognitiveDomain.EXECUTIVE_FUNCTION,
    )),
    SessionSlot("domain", 2, domain_pool=(CognitiveDomain.SOCIAL_COGNITION,)),
    SessionSlot("fixed", 2, activity_id=WORD_GARDEN_HARVEST_ID),
    SessionSlot("fixed", 2, domain=CognitiveDomain.CLOSING),
)


class AdaptivePlanner:
    """
    Select activities for a session.

    A slot that cannot be filled without repeating an activity repeats one
    rather than failing; a slot the library has nothing at all for raises
    PlannerConfigError.
    """

    def __init__(
        self,
        library: ContentLibrary,
        structure: tuple[SessionSlot, ...] = SESSION_STRUCTURE,
        rng: Optional[random.Random] = None,
    ):
        self.library = library
        self.structure = structure
        self._rng = rng or random.Random()

    def build_adaptive_plan(self, profile: Optional[UserProfile] = None) -> SessionPlan:
        """
        Build a plan, adapting domain order and difficulty to profile.

        Args:
            profile: Participant history; None uses the default domain order

        Returns:
            SessionPlan with fresh session_id/plan_id

        Raises:
            PlannerConfigError: The library has no activity for a required slot
        """
        priority = get_priority_domains(profile) if profile else list(TRAINABLE_DOMAINS)
        activities: list[Activity] = []
        covered: list[CognitiveDomain] = []
        used_ids: set[str] = set()

        for slot in self.structure:
            if slot.kind == "fixed":
                activity = self._resolve_fixed(slot, used_ids)
            else:
                domain = self._select_from_pool(slot.domain_pool, priority, covered)
                activity = self._select_for_domain(domain, used_ids)

            activities.append(self._adjust_difficulty(activity, profile))
            used_ids.add(activity.id)
            if activity.cognitive_domain.is_trainable:
                covered.append(activity.cognitive_domain)

        session_id, plan_id = create_session_identifiers()
        plan = SessionPlan(
            session_id=session_id,
            plan_id=plan_id,
            activities=tuple(activities),
            target_domains=tuple(dict.fromkeys(covered)),
            estimated_duration_min=sum(a.duration_min for a in activities),
            created_at=datetime.now(timezone.utc),
        )
        logger.debug(f"Plan {plan.plan_id[:8]}: {' -> '.join(plan.activity_ids)}")
        return plan

    def _resolve_fixed(self, slot: SessionSlot, used_ids: set[str]) -> Activity:
        if slot.activity_id:
            activity = self.library.get(slot.activity_id)
            if activity is None:
                raise PlannerConfigError(f"Content library has no activity '{slot.activity_id}'")
            return activity
        if slot.domain is None:
            raise PlannerConfigError("Fixed slot needs an activity_id or a domain")
        return self._select_for_domain(slot.domain, used_ids)

    def _select_from_pool(
        self,
        pool: tuple[CognitiveDomain, ...],
        priority: list[CognitiveDomain],
        already_selected: list[CognitiveDomain],
    ) -> CognitiveDomain:
        # Only domains the library can actually serve are candidates
        available = [d for d in pool if self.library.for_domain(d)]
        if not available:
            names = ", ".join(d.value for d in pool)
            raise PlannerConfigError(f"Content library has no activities for any of: {names}")

        for domain in priority:
            if domain in available and domain not in already_selected:
                return domain
        for domain in available:
            if domain not in already_selected:
                return domain
        return available[0]

    def _select_for_domain(self, domain: CognitiveDomain, used_ids: set[str]) -> Activity:
        candidates = self.library.for_domain(domain)
        if not candidates:
            raise PlannerConfigError(f"Content library has no activities for domain '{domain.value}'")

        fresh = [a for a in candidates if a.id not in used_ids]
        if not fresh:
            logger.debug(f"No unused activity for {domain.value}; allowing a repeat")
        return self._rng.choice(fresh or candidates)

    @staticmethod
    def _adjust_difficulty(activity: Activity, profile: Optional[UserProfile]) -> Activity:
        if profile is None or activity.difficulty != DifficultyLevel.ADAPTIVE:
            return activity
        return activity.with_difficulty(get_difficulty_for_domain(profile, activity.cognitive_domain))


@lru_cache(maxsize=1)
def _default_planner() -> AdaptivePlanner:
    from config import get_settings

    return AdaptivePlanner(load_library(get_settings().content_library_path))


def build_adaptive_plan(profile: Optional[UserProfile] = None) -> SessionPlan:
    """Build a plan from the configured content library."""
    return _default_planner().build_adaptive_plan(profile)


def build_plan() -> list[Activity]:
    """Legacy entry point: the activity list of a profile-less plan."""
    return list(build_adaptive_plan().activities)
