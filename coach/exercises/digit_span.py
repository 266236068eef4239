"""
Digit span handler.

"Number Echo" (forward) and "Backwards Challenge" (backward). The sequence
grows by one after every correct echo; two misses in a row, or reaching
the maximum length, ends the exercise.
"""

import random
from typing import Optional

from coach.activity import Activity, ActivityResult, ActivityType
from coach.scoring import compare_digit_sequences, generate_digit_sequence, normalize_score

from . import register
from .base import ActivityRun, ExerciseContext

MAX_LENGTH = {"forward": 9, "backward": 8}
START_LENGTH = {"forward": 3, "backward": 2}
MAX_CONSECUTIVE_FAILURES = 2


@register(ActivityType.DIGIT_SPAN)
class DigitSpanHandler:
    """Adaptive forward/backward digit span."""

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng

    async def run(self, activity: Activity, ctx: ExerciseContext) -> ActivityResult:
        run = ActivityRun(activity)
        direction = str(activity.param("direction", "forward")).lower()
        if direction not in MAX_LENGTH:
            direction = "forward"
        length = int(activity.param("sequence_length", START_LENGTH[direction]))
        max_length = MAX_LENGTH[direction]

        failures = 0
        max_span = 0
        ctx.log.info(f"DigitSpan: {direction}, initial length {length}")

        await ctx.speak(activity.line(0))

        while length <= max_length and failures < MAX_CONSECUTIVE_FAILURES:
            digits = generate_digit_sequence(length, self.rng)
            await ctx.speak(f"Here are your numbers: {' ... '.join(str(d) for d in digits)}")

            transcript = run.record(await ctx.listen())
            correct = compare_digit_sequences(transcript, digits, direction)
            ctx.log.debug(f"DigitSpan: '{transcript}' for {digits} -> {'correct' if correct else 'wrong'}")

            if correct:
                max_span = length
                failures = 0
                length += 1
                if length <= max_length:
                    await ctx.speak("Perfect! Let's try a longer one.")
            else:
                failures += 1
                if failures < MAX_CONSECUTIVE_FAILURES:
                    await ctx.speak("Let's try that length again.")

        if max_span > 0:
            await ctx.speak(f"Great effort! You remembered sequences of {max_span} numbers.")
        else:
            await ctx.speak("Good try! This one is tricky.")

        low, high = activity.scoring.bounds(3, 9)
        return run.finish(
            score=normalize_score(max_span, low, high),
            raw_score=max_span,
            details={"direction": direction},
        )
