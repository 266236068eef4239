"""
Story recall handler.

"Story Journey": narrate a short story (script[1]) then ask one question per
remaining middle line. Each answer is checked against a few acceptable
keywords from expected_answers.
"""

from coach.activity import Activity, ActivityResult, ActivityType
from coach.scoring import contains_any, normalize_score

from . import register
from .base import ActivityRun, ExerciseContext

DEFAULT_EXPECTED_ANSWERS: list[list[str]] = [
    ["tuesday"],
    ["peter"],
    ["maple", "maple street"],
    ["3", "three"],
    ["max"],
]


@register(ActivityType.STORY_RECALL)
class StoryRecallHandler:

    async def run(self, activity: Activity, ctx: ExerciseContext) -> ActivityResult:
        run = ActivityRun(activity)
        expected_answers = activity.param("expected_answers", DEFAULT_EXPECTED_ANSWERS)
        detail_count = int(activity.param("detail_count", len(expected_answers)))
        ctx.log.info(f"StoryRecall: {detail_count} details")

        await ctx.speak(activity.line(0))
        await ctx.speak(activity.line(1))

        correct = 0
        for index, question in enumerate(activity.script[2:-1]):
            await ctx.speak(question)
            transcript = run.record(await ctx.listen())
            if index >= len(expected_answers):
                continue
            ok = contains_any(transcript, expected_answers[index])
            correct += ok
            ctx.log.debug(f"StoryRecall: '{question}' -> '{transcript}' = {'correct' if ok else 'wrong'}")

        await ctx.speak(activity.closing_line)

        low, high = activity.scoring.bounds(2, detail_count)
        return run.finish(
            score=normalize_score(correct, low, high),
            raw_score=correct,
            details={"correct": correct, "detail_count": detail_count},
        )
