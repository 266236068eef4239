"""
Serial arithmetic handler.

"Countdown Challenge": count backwards from a start number by a fixed step
in one long recording. The spoken countdown is parsed into numbers and
walked against the expected progression.
"""

from dataclasses import dataclass, field

from coach.activity import Activity, ActivityResult, ActivityType
from coach.scoring import extract_numbers, normalize_score

from . import register
from .base import ActivityRun, ExerciseContext, fill

# How far below the expected value a number may land and still be read as a
# slip (resyncing the countdown) rather than noise
NEAR_MISS_STEPS = 3


@dataclass
class SubtractionAnalysis:
    numbers: list[int] = field(default_factory=list)
    correct_count: int = 0
    errors: int = 0
    last_number: int = 0


def analyze_serial_subtraction(transcript: str, start: int, step: int) -> SubtractionAnalysis:
    """
    Walk the spoken numbers against start, start - step, ...

    A number one step past the expected value counts as correct (the
    participant skipped saying one). A number slightly below expected is an
    error but resyncs the countdown from it. Anything else is an error.
    """
    numbers = extract_numbers(transcript)
    result = SubtractionAnalysis(numbers=numbers, last_number=start)
    expected = start

    for num in numbers:
        if num == expected:
            result.correct_count += 1
            result.last_number = num
            expected -= step
        elif num == expected - step:
            result.correct_count += 1
            result.last_number = num
            expected = num - step
        elif expected - step * NEAR_MISS_STEPS < num < expected:
            result.errors += 1
            result.last_number = num
            expected = num - step
        else:
            result.errors += 1

    return result


@register(ActivityType.SERIAL_ARITHMETIC)
class SerialArithmeticHandler:

    async def run(self, activity: Activity, ctx: ExerciseContext) -> ActivityResult:
        run = ActivityRun(activity)
        start = int(activity.param("start_number", 50))
        step = int(activity.param("subtract_by", 3))
        duration = float(activity.param("time_limit_sec", 30))
        ctx.log.info(f"SerialArithmetic: {start} - {step}...")

        async def encourage() -> None:
            if len(activity.script) > 1:
                await ctx.speak(activity.line(1))

        await ctx.speak(fill(activity.line(0), start=start, step=step))
        transcript = run.record(await ctx.listen_for_duration(duration, encourage))

        analysis = analyze_serial_subtraction(transcript, start, step)
        ctx.log.info(
            f"SerialArithmetic: {analysis.correct_count} correct, {analysis.errors} errors, "
            f"ended at {analysis.last_number}"
        )
        await ctx.speak(fill(activity.closing_line, count=analysis.last_number, last=analysis.last_number))

        low, high = activity.scoring.bounds(5, 15)
        return run.finish(
            score=normalize_score(analysis.correct_count, low, high),
            raw_score=analysis.correct_count,
            details={
                "numbers": analysis.numbers,
                "correct_steps": analysis.correct_count,
                "errors": analysis.errors,
                "last_number": analysis.last_number,
            },
        )
