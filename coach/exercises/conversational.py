"""
Conversational handler.

Open-ended activities (conversation, guided recall, orientation, closing)
run up to MAX_TURNS_PER_ACTIVITY listen/reply turns, with the LLM deciding
after each answer whether a follow-up is worthwhile. They are scored by an
engagement heuristic.

Two keyword-scored variants share the handler:

- emotion: "Voice Feelings". Each middle script line is a vignette; the
  answer must name one of that trial's emotion words.
- belief: "Mind Reader Stories". False-belief vignettes; belief_answers
  lists the expected word per middle line (null for unscored follow-ups).
"""

from typing import Optional

from coach.activity import Activity, ActivityResult, ActivityType
from coach.scoring import contains_any

from . import register
from .base import MAX_TURNS_PER_ACTIVITY, ActivityRun, ExerciseContext

REENGAGE_PROMPT = "Take your time. I'm here when you're ready."

DEFAULT_EMOTION_TRIALS: list[list[str]] = [
    ["angry", "frustrated", "upset", "surprised", "shocked"],
    ["sad", "disappointed", "hurt", "passive aggressive", "upset"],
    ["happy", "excited", "joyful", "thrilled"],
    ["confused", "uncertain", "worried", "anxious", "unsure"],
]

DEFAULT_BELIEF_ANSWERS: list[Optional[list[str]]] = [
    ["drawer"],  # where Sarah thinks the book is
    None,        # "why would she look there?"
    ["blue"],    # which box Mary believes holds the candy
]


def calculate_engagement_score(transcripts: list[str]) -> int:
    """
    Engagement from average words per answer, plus a small per-turn bonus.

    <5 words: 30-50, 5-15: 50-70, 15-30: 70-85, >30: 85-100.
    """
    word_counts = [len(t.split()) for t in transcripts]
    if not transcripts or sum(word_counts) == 0:
        return 0

    avg = sum(word_counts) / len(transcripts)
    if avg < 5:
        score = 30 + avg * 4
    elif avg < 15:
        score = 50 + (avg - 5) * 2
    elif avg < 30:
        score = 70 + (avg - 15)
    else:
        score = min(100, 85 + (avg - 30) * 0.5)

    score += min(10, len(transcripts) * 3)
    return round(min(100, score))


def resolve_variant(activity: Activity) -> str:
    variant = activity.param("variant")
    if variant in ("dialogue", "emotion", "belief"):
        return variant
    if activity.type == ActivityType.EMOTION_RECOGNITION:
        return "emotion"
    if activity.type == ActivityType.PERSPECTIVE_TAKING and activity.id == "mind_reader_stories":
        return "belief"
    return "dialogue"


@register(
    ActivityType.CONVERSATION,
    ActivityType.GUIDED_RECALL,
    ActivityType.EMOTION_RECOGNITION,
    ActivityType.PERSPECTIVE_TAKING,
    ActivityType.ORIENTATION,
    ActivityType.CLOSING,
)
class ConversationalHandler:

    async def run(self, activity: Activity, ctx: ExerciseContext) -> ActivityResult:
        variant = resolve_variant(activity)
        ctx.log.info(f"Conversational: {variant} variant")
        if variant == "emotion":
            return await self._run_keyword_trials(
                activity, ctx, activity.param("emotion_trials", DEFAULT_EMOTION_TRIALS)
            )
        if variant == "belief":
            return await self._run_keyword_trials(
                activity, ctx, activity.param("belief_answers", DEFAULT_BELIEF_ANSWERS)
            )
        return await self._run_dialogue(activity, ctx)

    async def _run_dialogue(self, activity: Activity, ctx: ExerciseContext) -> ActivityResult:
        run = ActivityRun(activity)
        max_turns = int(activity.param("max_turns", MAX_TURNS_PER_ACTIVITY))

        await ctx.speak(activity.line(0))
        turn = 0
        while turn < max_turns:
            transcript = run.record(await ctx.listen())

            if len(transcript.strip()) < 2:
                if turn < max_turns - 1:
                    await ctx.speak(REENGAGE_PROMPT)
                turn += 1
                continue

            reply = await ctx.generate_response(transcript, activity, turn)
            await ctx.speak(reply.text)
            turn += 1
            if not reply.should_follow_up:
                break

        return run.finish(score=calculate_engagement_score(run.transcripts))

    async def _run_keyword_trials(
        self,
        activity: Activity,
        ctx: ExerciseContext,
        answer_keys: list[Optional[list[str]]],
    ) -> ActivityResult:
        """One listen per middle script line; lines with an answer key are scored."""
        run = ActivityRun(activity)
        correct = scored = 0

        await ctx.speak(activity.line(0))
        for prompt, keywords in zip(activity.script[1:-1], answer_keys):
            await ctx.speak(prompt)
            transcript = run.record(await ctx.listen())
            if not keywords:
                continue
            scored += 1
            ok = contains_any(transcript, keywords)
            correct += ok
            ctx.log.debug(f"Conversational: '{transcript}' = {'correct' if ok else 'wrong'}")

        await ctx.speak(activity.closing_line)

        score = round(correct / scored * 100) if scored else 0
        return run.finish(score=score, raw_score=correct, details={"correct": correct, "scored": scored})
