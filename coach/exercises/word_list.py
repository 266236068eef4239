"""
Word list handler.

"Word Garden - Plant" presents a list, stores it in session state and tests
immediate recall. "Word Garden - Harvest" runs later in the same session
and tests delayed recall of whatever was planted (or the default list).
"""

from coach.activity import Activity, ActivityResult, ActivityType
from coach.scoring import match_recalled_words, normalize_score

from . import register
from .base import ActivityRun, ExerciseContext, fill

WORD_GARDEN_WORDS = [
    "Apple", "Bicycle", "Sunset", "Garden",
    "Music", "Elephant", "Kitchen", "Rainbow",
]


@register(ActivityType.WORD_LIST)
class WordListHandler:
    """Immediate (plant) or delayed (harvest) free recall."""

    async def run(self, activity: Activity, ctx: ExerciseContext) -> ActivityResult:
        run = ActivityRun(activity)
        delayed = activity.param("delay_type", "immediate") == "delayed"
        ctx.log.info(f"WordList: {'delayed' if delayed else 'immediate'} recall")

        if delayed:
            words = self._harvest_words(activity, ctx)
            await ctx.speak(activity.line(0))
            await ctx.speak(activity.line(1))
            recalled = match_recalled_words(run.record(await ctx.listen()), words)
            await ctx.speak(fill(activity.line(2), count=len(recalled)))
        else:
            words = self._plant_words(activity)
            await ctx.speak(activity.line(0))
            await ctx.speak(fill(activity.line(1), words="... ".join(words)))
            ctx.set_session_state(planted_words=list(words))
            await ctx.speak(activity.line(2))
            recalled = match_recalled_words(run.record(await ctx.listen()), words)
            await ctx.speak(fill(activity.line(3), count=len(recalled)))

        ctx.log.info(f"WordList: recalled {len(recalled)}/{len(words)} words")
        low, high = activity.scoring.bounds(1, len(words))
        return run.finish(
            score=normalize_score(len(recalled), low, high),
            raw_score=len(recalled),
            details={"recalled_words": recalled, "target_words": list(words)},
        )

    @staticmethod
    def _plant_words(activity: Activity) -> list[str]:
        words = activity.param("words")
        if words:
            return [str(w) for w in words]
        return WORD_GARDEN_WORDS[: int(activity.param("word_count", len(WORD_GARDEN_WORDS)))]

    @staticmethod
    def _harvest_words(activity: Activity, ctx: ExerciseContext) -> list[str]:
        planted = ctx.get_session_state().planted_words
        if planted:
            return list(planted)
        ctx.log.warning("WordList: nothing planted this session; using the default list")
        return WordListHandler._plant_words(activity)
