"""
N-back handler.

"Word Match Game": say "match" whenever the current word is the same as
the one N positions earlier. script[1] is a practice round, script[2]
carries the real word stream after its colon.
"""

from coach.activity import Activity, ActivityResult, ActivityType
from coach.scoring import average, normalize_score, split_stimuli

from . import register
from .base import ActivityRun, ExerciseContext


def match_positions(words: list[str], n: int) -> list[bool]:
    """True at each position whose word repeats the one n back."""
    return [i >= n and words[i].lower() == words[i - n].lower() for i in range(len(words))]


@register(ActivityType.N_BACK)
class NBackHandler:

    async def run(self, activity: Activity, ctx: ExerciseContext) -> ActivityResult:
        run = ActivityRun(activity)
        n = int(activity.param("n_level", 2))
        window_ms = int(activity.param("response_window_ms", 2000))

        await ctx.speak(activity.line(0))
        await ctx.speak(activity.line(1))
        run.record(await ctx.listen())

        words = activity.param("words") or split_stimuli(activity.line(2))
        truth = match_positions(words, n)
        ctx.log.info(f"NBack: {n}-back over {len(words)} words, {sum(truth)} targets")

        hits = misses = false_alarms = correct_rejections = 0
        hit_latencies: list[int] = []
        for word, is_match in zip(words, truth):
            await ctx.speak(word)
            response = await ctx.listen_brief(window_ms)
            run.record(response)
            said_match = response.has_response and "match" in response.transcript.lower()

            if is_match and said_match:
                hits += 1
                if response.latency_ms is not None:
                    hit_latencies.append(response.latency_ms)
            elif is_match:
                misses += 1
            elif said_match:
                false_alarms += 1
            else:
                correct_rejections += 1

        ctx.log.info(f"NBack: hits={hits} misses={misses} FA={false_alarms} CR={correct_rejections}")
        await ctx.speak(activity.closing_line)

        low, high = activity.scoring.bounds(2, hits + misses)
        return run.finish(
            score=normalize_score(hits, low, high),
            raw_score=hits - false_alarms,
            response_time_ms=average(hit_latencies),
            use_average_latency=False,
            details={
                "n_level": n,
                "hits": hits,
                "misses": misses,
                "false_alarms": false_alarms,
                "correct_rejections": correct_rejections,
            },
        )
