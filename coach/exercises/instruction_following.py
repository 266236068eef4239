"""
Instruction following handler.

"Follow the Path": hear a multi-step instruction, carry it out, describe
what you did. Steps are credited by keyword. Physical steps often produce
little speech, so a near-silent answer still earns one step.
"""

from coach.activity import Activity, ActivityResult, ActivityType
from coach.scoring import contains_any, normalize_score

from . import register
from .base import ActivityRun, ExerciseContext

COLORS = [
    "blue", "red", "green", "yellow", "orange", "purple",
    "pink", "brown", "black", "white", "gray", "grey",
]

DEFAULT_STEP_KEYWORDS: list[list[str]] = [
    ["nose", "touch", "did it"],
    ["clap", "clapped"],
    COLORS,
]

SHORT_RESPONSE_CHARS = 5


def count_completed_steps(transcript: str, step_keywords: list[list[str]]) -> int:
    completed = sum(1 for keywords in step_keywords if contains_any(transcript, keywords))
    if len(transcript.strip()) < SHORT_RESPONSE_CHARS:
        completed = max(completed, 1)
    return min(completed, len(step_keywords))


@register(ActivityType.INSTRUCTION_FOLLOWING)
class InstructionFollowingHandler:

    async def run(self, activity: Activity, ctx: ExerciseContext) -> ActivityResult:
        run = ActivityRun(activity)
        step_keywords = activity.param("step_keywords", DEFAULT_STEP_KEYWORDS)
        step_count = int(activity.param("step_count", len(step_keywords)))
        ctx.log.info(f"InstructionFollowing: {step_count} steps")

        await ctx.speak(activity.line(0))
        await ctx.speak(activity.line(1))
        await ctx.speak(activity.line(2))
        transcript = run.record(await ctx.listen())

        completed = count_completed_steps(transcript, step_keywords)
        ctx.log.info(f"InstructionFollowing: completed {completed}/{step_count} steps")
        await ctx.speak(activity.line(3))

        low, high = activity.scoring.bounds(1, step_count)
        return run.finish(
            score=normalize_score(completed, low, high),
            raw_score=completed,
            details={"completed_steps": completed, "step_count": step_count},
        )
