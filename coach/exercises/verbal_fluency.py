"""
Verbal fluency handler.

Two variants:

- timed: "Letter Dash" / "Category Sprint". One long listen; the score is
  the number of unique words (optionally only those starting with the
  required letter). Script lines between the first and last are spoken as
  encouragement mid-way.
- association: "Quick Connections". One prompt per middle script line,
  scored by average response latency.
"""

from coach.activity import Activity, ActivityResult, ActivityType
from coach.scoring import LATENCY_SLOW_MS, count_unique_words, normalize_latency, normalize_score

from . import register
from .base import ActivityRun, ExerciseContext, fill

TIMED_IDS = {"letter_dash", "category_sprint"}
ASSOCIATION_IDS = {"quick_connections", "rapid_fire_questions"}


def resolve_variant(activity: Activity) -> str:
    variant = activity.param("variant")
    if variant in ("timed", "association"):
        return variant
    return "association" if activity.id in ASSOCIATION_IDS else "timed"


@register(ActivityType.VERBAL_FLUENCY)
class VerbalFluencyHandler:

    async def run(self, activity: Activity, ctx: ExerciseContext) -> ActivityResult:
        variant = resolve_variant(activity)
        ctx.log.info(f"VerbalFluency: {variant} variant")
        if variant == "association":
            return await self._run_association(activity, ctx)
        return await self._run_timed(activity, ctx)

    async def _run_timed(self, activity: Activity, ctx: ExerciseContext) -> ActivityResult:
        run = ActivityRun(activity)
        time_limit = float(activity.param("time_limit_sec", 45))
        encouragements = list(activity.script[1:-1])

        async def encourage() -> None:
            if encouragements:
                await ctx.speak(encouragements.pop(0))

        await ctx.speak(activity.line(0))
        transcript = run.record(await ctx.listen_for_duration(time_limit, encourage))

        words = count_unique_words(transcript)
        letter = str(activity.param("letter", "")).strip().lower()
        if letter:
            words = [w for w in words if w.startswith(letter)]
        ctx.log.info(f"VerbalFluency: {len(words)} valid words")

        await ctx.speak(fill(activity.closing_line, count=len(words)))

        low, high = activity.scoring.bounds(5, 25)
        return run.finish(
            score=normalize_score(len(words), low, high),
            raw_score=len(words),
            details={"words": words},
        )

    async def _run_association(self, activity: Activity, ctx: ExerciseContext) -> ActivityResult:
        run = ActivityRun(activity)
        answered_latencies: list[int] = []

        await ctx.speak(activity.line(0))
        for prompt in activity.script[1:-1]:
            await ctx.speak(prompt)
            response = await ctx.listen()
            run.record(response)
            if response.has_speech and response.latency_ms is not None:
                answered_latencies.append(response.latency_ms)
            ctx.log.debug(f"VerbalFluency: '{prompt}' -> '{response.transcript}' ({response.latency_ms}ms)")
        await ctx.speak(activity.closing_line)

        # Unanswered prompts count as the slowest possible response
        latencies = answered_latencies + [LATENCY_SLOW_MS] * (len(activity.script[1:-1]) - len(answered_latencies))
        avg = round(sum(latencies) / len(latencies)) if latencies else LATENCY_SLOW_MS
        return run.finish(
            score=normalize_latency(avg),
            raw_score=avg,
            response_time_ms=avg,
            details={"answered": len(answered_latencies)},
        )
