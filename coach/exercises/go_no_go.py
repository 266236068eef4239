"""
Go/No-Go handler.

"Animal Spotter", "Listen and Tap", "Category Snap": respond to targets,
stay silent for everything else. Each stimulus gets a brief listen window
and is classified as hit / miss / false alarm / correct rejection.

"Number Hunter" (count variant): hear a stream of digits, then say how many
times the target number appeared.
"""

import re

from coach.activity import Activity, ActivityResult, ActivityType, ScoringMetric
from coach.scoring import (
    average,
    compute_composite_score,
    extract_numbers,
    first_number,
    normalize_latency,
    normalize_score,
    split_stimuli,
)

from . import register
from .base import ActivityRun, ExerciseContext

TARGETS: dict[str, list[str]] = {
    "animals": ["dog", "cat", "horse", "fish", "bird", "rabbit", "elephant", "lion", "tiger", "bear"],
    "colors": ["blue", "red", "green", "yellow", "orange", "purple", "pink", "brown", "black", "white"],
    "food": ["apple", "pizza", "banana", "sandwich", "soup", "bread", "cheese", "salad", "pasta", "rice"],
}

GO_RESPONSE = re.compile(r"yes|tap|match")
COUNT_PENALTY_PER_MISS = 25


def resolve_variant(activity: Activity) -> str:
    variant = activity.param("variant")
    if variant in ("stream", "count"):
        return variant
    return "count" if activity.id == "number_hunter" else "stream"


@register(ActivityType.GO_NO_GO)
class GoNoGoHandler:

    async def run(self, activity: Activity, ctx: ExerciseContext) -> ActivityResult:
        if resolve_variant(activity) == "count":
            return await self._run_count(activity, ctx)
        return await self._run_stream(activity, ctx)

    async def _run_stream(self, activity: Activity, ctx: ExerciseContext) -> ActivityResult:
        run = ActivityRun(activity)
        category = activity.param("target_category", "animals")
        targets = [t.lower() for t in activity.param("targets", TARGETS.get(category, TARGETS["animals"]))]
        stimuli = activity.param("stimuli") or split_stimuli(activity.line(1))
        window_ms = int(activity.param("response_window_ms", 2000))
        ctx.log.info(f"GoNoGo: {len(stimuli)} stimuli, targets '{category}'")

        hits = misses = false_alarms = correct_rejections = 0
        hit_latencies: list[int] = []

        await ctx.speak(activity.line(0))
        for stimulus in stimuli:
            await ctx.speak(stimulus)
            response = await ctx.listen_brief(window_ms)
            run.record(response)

            is_target = any(t in stimulus.lower() for t in targets)
            responded = response.has_response and bool(GO_RESPONSE.search(response.transcript.lower()))

            if is_target and responded:
                hits += 1
                if response.latency_ms is not None:
                    hit_latencies.append(response.latency_ms)
            elif is_target:
                misses += 1
            elif responded:
                false_alarms += 1
            else:
                correct_rejections += 1

        ctx.log.info(f"GoNoGo: hits={hits} misses={misses} FA={false_alarms} CR={correct_rejections}")
        await ctx.speak(activity.closing_line)

        total_targets = hits + misses
        avg_latency = average(hit_latencies)
        if activity.scoring.metric == ScoringMetric.COMPOSITE and avg_latency is not None:
            accuracy = hits / total_targets * 100 if total_targets else 0
            score = compute_composite_score([(accuracy, 2), (normalize_latency(avg_latency), 1)])
        else:
            low, high = activity.scoring.bounds(0, total_targets)
            score = normalize_score(hits, low, high)

        return run.finish(
            score=score,
            raw_score=hits,
            response_time_ms=avg_latency,
            use_average_latency=False,
            details={
                "hits": hits,
                "misses": misses,
                "false_alarms": false_alarms,
                "correct_rejections": correct_rejections,
            },
        )

    async def _run_count(self, activity: Activity, ctx: ExerciseContext) -> ActivityResult:
        run = ActivityRun(activity)
        target = int(activity.param("target_number", 7))
        sequence_line = activity.line(1)
        expected = activity.param("expected_count")
        if expected is None:
            expected = extract_numbers(sequence_line).count(target)

        await ctx.speak(activity.line(0))
        await ctx.speak(sequence_line)
        await ctx.speak(activity.line(2))
        answer = first_number(run.record(await ctx.listen()))
        ctx.log.info(f"NumberHunter: answered {answer}, correct is {expected}")
        await ctx.speak(activity.line(3))

        if answer is None:
            score = 0
        else:
            score = max(0, 100 - abs(answer - int(expected)) * COUNT_PENALTY_PER_MISS)
        return run.finish(
            score=score,
            raw_score=answer,
            details={"target_number": target, "expected_count": int(expected)},
        )
