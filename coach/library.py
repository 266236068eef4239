"""
Content library: the read-only catalogue of activities.

Loaded once at process start from a JSON array of activity records
(packaged as coach/data/activities.json unless overridden).
"""
from __future__ import annotations

import json
from importlib import resources
from pathlib import Path
from typing import Iterable, Iterator, Optional

from loguru import logger

from coach.activity import Activity
from coach.domains import CognitiveDomain
from coach.errors import LibraryError


class ContentLibrary:
    """Ordered activities keyed by unique id."""

    def __init__(self, activities: Iterable[Activity]):
        self._activities: list[Activity] = []
        self._by_id: dict[str, Activity] = {}
        for activity in activities:
            if activity.id in self._by_id:
                raise LibraryError(f"Duplicate activity id: {activity.id}")
            self._activities.append(activity)
            self._by_id[activity.id] = activity

    def __len__(self) -> int:
        return len(self._activities)

    def __iter__(self) -> Iterator[Activity]:
        return iter(self._activities)

    def __contains__(self, activity_id: object) -> bool:
        return activity_id in self._by_id

    def get(self, activity_id: str) -> Optional[Activity]:
        return self._by_id.get(activity_id)

    def for_domain(self, domain: CognitiveDomain) -> list[Activity]:
        return [a for a in self._activities if a.cognitive_domain == domain]

    @property
    def domains(self) -> set[CognitiveDomain]:
        return {a.cognitive_domain for a in self._activities}

    @classmethod
    def from_records(cls, records: list[dict]) -> "ContentLibrary":
        if not isinstance(records, list):
            raise LibraryError("Content library must be a JSON array of activities")

        activities = []
        for index, record in enumerate(records):
            try:
                activities.append(Activity.from_dict(record))
            except (KeyError, ValueError, TypeError) as e:
                ident = record.get("id", f"#{index}") if isinstance(record, dict) else f"#{index}"
                raise LibraryError(f"Invalid activity {ident}: {e}") from e
        return cls(activities)


def load_library(path: Path | str | None = None) -> ContentLibrary:
    """Load the library from path, or the packaged default."""
    try:
        if path:
            with open(path, "r", encoding="utf-8") as f:
                records = json.load(f)
            source = str(path)
        else:
            text = resources.files("coach").joinpath("data/activities.json").read_text(encoding="utf-8")
            records = json.loads(text)
            source = "packaged activities.json"
    except (OSError, json.JSONDecodeError) as e:
        raise LibraryError(f"Cannot read content library: {e}") from e

    library = ContentLibrary.from_records(records)
    logger.debug(f"Loaded {len(library)} activities from {source}")
    return library
