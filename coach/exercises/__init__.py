"""
Exercise handlers for coaching sessions.

Each exercise family (digit span, word list, go/no-go, ...) has its own
module with a handler class exposing:
- run(activity, ctx): drive the spoken turns and return an ActivityResult

Handlers register themselves against one or more ActivityType values; the
table is checked for completeness at import, so an ActivityType without a
handler fails loudly instead of falling through at runtime.
"""

from typing import TYPE_CHECKING

from coach.activity import Activity, ActivityResult, ActivityType

if TYPE_CHECKING:
    from .base import ExerciseContext, ExerciseHandler


# Handler registry - populated by @register decorator
HANDLERS: dict[ActivityType, "ExerciseHandler"] = {}


def register(*activity_types: ActivityType):
    """Decorator to register an exercise handler for one or more types."""
    def decorator(cls):
        handler = cls()
        for activity_type in activity_types:
            if activity_type in HANDLERS:
                raise RuntimeError(f"Duplicate handler for {activity_type.value}")
            HANDLERS[activity_type] = handler
        return cls
    return decorator


def get_handler(activity_type: str | ActivityType) -> "ExerciseHandler | None":
    """Get the handler for an activity type."""
    if isinstance(activity_type, str):
        try:
            activity_type = ActivityType(activity_type.lower())
        except ValueError:
            return None
    return HANDLERS.get(activity_type)


async def run_activity(activity: Activity, ctx: "ExerciseContext") -> ActivityResult:
    """Dispatch an activity to its family handler."""
    handler = HANDLERS[activity.type]
    return await handler.run(activity, ctx.for_activity(activity))


# Import handlers to trigger registration
from . import digit_span  # noqa: E402
from . import word_list  # noqa: E402
from . import verbal_fluency  # noqa: E402
from . import go_no_go  # noqa: E402
from . import serial_arithmetic  # noqa: E402
from . import task_switching  # noqa: E402
from . import instruction_following  # noqa: E402
from . import n_back  # noqa: E402
from . import story_recall  # noqa: E402
from . import conversational  # noqa: E402

_missing = [t.value for t in ActivityType if t not in HANDLERS]
if _missing:
    raise RuntimeError(f"No exercise handler registered for: {', '.join(_missing)}")

__all__ = [
    "HANDLERS",
    "get_handler",
    "register",
    "run_activity",
]
