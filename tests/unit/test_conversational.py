"""
Unit tests for conversational activities and their keyword-scored variants.
"""

import pytest

from coach.exercises import run_activity
from coach.exercises.base import ExerciseContext, LLMReply, SessionState
from coach.exercises.conversational import (
    REENGAGE_PROMPT,
    calculate_engagement_score,
    resolve_variant,
)
from coach.simulator import ScriptedVoiceIO


class TestEngagementScore:
    """Tests for the engagement heuristic."""

    def test_no_speech_scores_zero(self):
        assert calculate_engagement_score([]) == 0
        assert calculate_engagement_score(["", "  "]) == 0

    @pytest.mark.parametrize(
        "words,expected",
        [
            (2, 41),    # 30 + 2*4 + 3
            (10, 63),   # 50 + 5*2 + 3
            (20, 78),   # 70 + 5 + 3
            (40, 93),   # 85 + 10*0.5 + 3
        ],
    )
    def test_bands(self, words, expected):
        """Test each words-per-answer band plus the single-turn bonus."""
        assert calculate_engagement_score([" ".join(["word"] * words)]) == expected

    def test_turn_bonus_caps_at_ten(self):
        answers = ["one two three four five six seven eight nine ten"] * 5
        assert calculate_engagement_score(answers) == 70


class TestVariants:
    """Tests for variant selection."""

    def test_resolution(self, library, make_activity):
        assert resolve_variant(library.get("voice_feelings")) == "emotion"
        assert resolve_variant(library.get("mind_reader_stories")) == "belief"
        assert resolve_variant(library.get("memory_lane")) == "dialogue"
        assert resolve_variant(make_activity(type="conversation", difficulty_params={"variant": "emotion"})) == "emotion"


class TestDialogue:
    """Tests for open-ended dialogue turns."""

    @pytest.mark.asyncio
    async def test_single_answer_moves_on(self, library, make_ctx):
        io, ctx = make_ctx("I feel wonderful today, I had a lovely breakfast with my daughter")
        result = await run_activity(library.get("memory_lane"), ctx)

        assert result.turn_count == 1
        assert result.score == 67
        assert io.spoken[-1] == "Thank you for sharing that."

    @pytest.mark.asyncio
    async def test_follow_ups_capped_at_three_turns(self, library):
        """Test the LLM asking for follow-ups never exceeds the turn limit."""
        io = ScriptedVoiceIO(
            ["Christmas", "with my family", "we sang carols", "and more"],
            llm_replies=[LLMReply("Tell me more!", True)] * 4,
        )
        ctx = ExerciseContext(io, SessionState())
        result = await run_activity(library.get("memory_lane"), ctx)

        assert result.turn_count == 3
        assert result.transcripts == ("Christmas", "with my family", "we sang carols")

    @pytest.mark.asyncio
    async def test_silence_reengages_then_gives_up(self, library, make_ctx):
        io, ctx = make_ctx("", "", "")
        result = await run_activity(library.get("memory_lane"), ctx)

        assert result.turn_count == 3
        assert result.score == 0
        assert io.spoken.count(REENGAGE_PROMPT) == 2

    @pytest.mark.asyncio
    async def test_orientation_respects_max_turns(self, library, make_ctx):
        io, ctx = make_ctx("", "")
        result = await run_activity(library.get("morning_checkin"), ctx)

        assert result.turn_count == 2
        assert io.spoken.count(REENGAGE_PROMPT) == 1


class TestKeywordTrials:
    """Tests for emotion recognition and false-belief stories."""

    @pytest.mark.asyncio
    async def test_voice_feelings(self, library, make_ctx):
        io, ctx = make_ctx("he'd be angry", "sad I think", "so happy", "no idea")
        result = await run_activity(library.get("voice_feelings"), ctx)

        assert result.details == {"correct": 3, "scored": 4}
        assert result.score == 75

    @pytest.mark.asyncio
    async def test_mind_reader_skips_unscored_prompts(self, library, make_ctx):
        """Test the 'why' follow-up is listened to but not scored."""
        io, ctx = make_ctx("in the drawer", "because she put it there", "the red box")
        result = await run_activity(library.get("mind_reader_stories"), ctx)

        assert result.turn_count == 3
        assert result.details == {"correct": 1, "scored": 2}
        assert result.score == 50
