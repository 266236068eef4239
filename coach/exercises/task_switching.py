"""
Task switching handler.

- category_switch ("Category Switcher"): alternate between naming the
  category of an item and naming an item of a category. Each middle script
  line is one prompt; expected_answers gives the acceptable keywords per
  prompt (an empty list accepts any answer).
- rule_change ("Rule Change Game"): say "big" or "small" for each item.
  A script line containing SWITCH reverses the rule; pre- and post-switch
  accuracy are tracked separately.
"""

import re
from dataclasses import dataclass

from coach.activity import Activity, ActivityResult, ActivityType
from coach.scoring import compute_composite_score, normalize_latency, normalize_score

from . import register
from .base import ActivityRun, ExerciseContext

SWITCH_MARKER = "SWITCH"

DEFAULT_CATEGORY_ANSWERS: list[list[str]] = [
    ["fruit", "food"],        # Apple
    [],                       # an animal
    ["tool", "hardware"],     # Hammer
    [],                       # a color
    ["instrument", "music"],  # Piano
    [],                       # a type of weather
    ["flower", "plant"],      # Rose
    [],                       # a vehicle
]

DEFAULT_SIZES: dict[str, str] = {
    "Elephant": "big",
    "Ant": "small",
    "Mountain": "big",
    "Button": "small",
    "Ocean": "big",
    "House": "big",
    "Pea": "small",
    "Whale": "big",
    "Grain of sand": "small",
    "Tree": "big",
    "Seed": "small",
}


@dataclass
class PhaseTally:
    correct: int = 0
    total: int = 0


def resolve_variant(activity: Activity) -> str:
    variant = activity.param("variant")
    if variant in ("category_switch", "rule_change"):
        return variant
    return "rule_change" if activity.id == "rule_change_game" else "category_switch"


def find_stimulus(line: str, sizes: dict[str, str]) -> tuple[str, str] | None:
    """First stimulus word named in the line, with its size."""
    lower = line.lower()
    for word, size in sizes.items():
        if re.search(rf"\b{re.escape(word.lower())}\b", lower):
            return word, size
    return None


@register(ActivityType.TASK_SWITCHING)
class TaskSwitchingHandler:

    async def run(self, activity: Activity, ctx: ExerciseContext) -> ActivityResult:
        if resolve_variant(activity) == "rule_change":
            return await self._run_rule_change(activity, ctx)
        return await self._run_category_switch(activity, ctx)

    async def _run_category_switch(self, activity: Activity, ctx: ExerciseContext) -> ActivityResult:
        run = ActivityRun(activity)
        expected_answers = activity.param("expected_answers", DEFAULT_CATEGORY_ANSWERS)
        correct = 0
        ctx.log.info("TaskSwitching: category switcher")

        await ctx.speak(activity.line(0))
        for index, prompt in enumerate(activity.script[1:-1]):
            await ctx.speak(prompt)
            transcript = run.record(await ctx.listen())

            accepted = expected_answers[index] if index < len(expected_answers) else []
            lower = transcript.lower()
            if accepted:
                ok = any(a.lower() in lower for a in accepted)
            else:
                ok = bool(transcript.strip())
            correct += ok
            ctx.log.debug(f"TaskSwitching: '{prompt}' -> '{transcript}' = {'correct' if ok else 'wrong'}")

        await ctx.speak(activity.closing_line)

        total = run.turn_count
        accuracy = correct / total * 100 if total else 0
        avg_latency = run.average_latency_ms
        if activity.scoring.capture_timing and avg_latency:
            score = compute_composite_score([(accuracy, 2), (normalize_latency(avg_latency), 1)])
        else:
            score = round(accuracy)
        return run.finish(score=score, raw_score=correct, details={"correct": correct, "total": total})

    async def _run_rule_change(self, activity: Activity, ctx: ExerciseContext) -> ActivityResult:
        run = ActivityRun(activity)
        sizes: dict[str, str] = activity.param("stimulus_sizes", DEFAULT_SIZES)
        before, after = PhaseTally(), PhaseTally()
        reversed_rule = False
        ctx.log.info("TaskSwitching: rule change game")

        await ctx.speak(activity.line(0))
        for line in activity.script[1:-1]:
            await ctx.speak(line)
            if SWITCH_MARKER in line:
                reversed_rule = True
                continue

            transcript = run.record(await ctx.listen())
            stimulus = find_stimulus(line, sizes)
            if stimulus is None:
                continue

            word, size = stimulus
            lower = transcript.lower()
            said = {"big": "big" in lower, "small": "small" in lower}
            wanted = size if not reversed_rule else ("small" if size == "big" else "big")
            ok = said[wanted]

            tally = after if reversed_rule else before
            tally.total += 1
            tally.correct += ok
            ctx.log.debug(f"TaskSwitching: '{word}' ({size}) -> '{transcript}' = {'correct' if ok else 'wrong'}")

        await ctx.speak(activity.closing_line)

        total_correct = before.correct + after.correct
        total_trials = before.total + after.total
        low, high = activity.scoring.bounds(6, total_trials)
        return run.finish(
            score=normalize_score(total_correct, low, high),
            raw_score=total_correct,
            details={
                "pre_switch_correct": before.correct,
                "pre_switch_total": before.total,
                "post_switch_correct": after.correct,
                "post_switch_total": after.total,
            },
        )
