"""
Unit tests for the structured exercise handlers.

Each handler is driven through a ScriptedVoiceIO, so the tests see exactly
what was spoken and what the participant "said".
"""

import random

import pytest

from coach.activity import ActivityType, DifficultyLevel
from coach.exercises import HANDLERS, get_handler, register, run_activity
from coach.exercises.base import ActivityRun, ListenResult, SessionState, fill
from coach.exercises.digit_span import DigitSpanHandler
from coach.exercises.instruction_following import count_completed_steps
from coach.exercises.n_back import match_positions
from coach.exercises.serial_arithmetic import analyze_serial_subtraction
from coach.exercises.task_switching import find_stimulus
from coach.exercises.word_list import WORD_GARDEN_WORDS
from coach.simulator import cooperative_responder, echo_digits


class TestHandlerRegistry:
    """Test the handler registry."""

    def test_every_activity_type_has_a_handler(self):
        assert set(HANDLERS) == set(ActivityType)

    def test_get_handler_by_string(self):
        assert get_handler("DIGIT_SPAN") is HANDLERS[ActivityType.DIGIT_SPAN]

    def test_get_handler_invalid_type(self):
        assert get_handler("juggling") is None

    def test_duplicate_registration_rejected(self):
        """Registering a second handler for a type fails loudly."""
        with pytest.raises(RuntimeError, match="digit_span"):
            @register(ActivityType.DIGIT_SPAN)
            class Impostor:
                async def run(self, activity, ctx):
                    raise NotImplementedError


class TestSharedPieces:
    """Tests for ActivityRun, SessionState and fill."""

    def test_activity_run_counts_listens(self, make_activity):
        activity = make_activity(type="conversation", difficulty="adaptive")
        run = ActivityRun(activity)
        run.record(ListenResult("hello", 900))
        run.record(ListenResult("", None))
        result = run.finish(score=140)

        assert result.turn_count == 2
        assert result.transcripts == ("hello", "")
        assert result.response_time_ms == 900
        assert result.score == 100
        assert result.difficulty_used == DifficultyLevel.MEDIUM

    def test_session_state_rejects_unknown_fields(self):
        state = SessionState()
        state.update(planted_words=["apple"])
        assert state.planted_words == ["apple"]
        with pytest.raises(AttributeError):
            state.update(favourite_colour="blue")

    def test_fill_placeholders(self):
        assert fill("You remembered {count} words.", count=4) == "You remembered 4 words."
        assert fill("You remembered [X] words.", count=4) == "You remembered 4 words."
        assert fill("Start at {start}, take {step}", start=50, step=3) == "Start at 50, take 3"


class TestDigitSpan:
    """Tests for forward and backward digit span."""

    @pytest.fixture
    def handler(self):
        return DigitSpanHandler(rng=random.Random(42))

    @pytest.mark.asyncio
    async def test_always_correct_forward_stops_at_nine(self, handler, make_activity, make_ctx):
        """Test a perfect participant climbs from 3 to the forward maximum of 9."""
        activity = make_activity(type="digit_span", difficulty_params={"direction": "forward"}, script=["Intro."])
        io, ctx = make_ctx(responder=lambda kind, spoken: echo_digits(spoken) or "")

        result = await handler.run(activity, ctx)

        assert result.raw_score == 9
        assert result.score == 100
        assert result.turn_count == 7
        assert io.spoken[0] == "Intro."
        assert io.spoken[1].startswith("Here are your numbers: ")
        assert " ... " in io.spoken[1]

    @pytest.mark.asyncio
    async def test_always_correct_backward_stops_at_eight(self, handler, make_activity, make_ctx):
        """Test backward span starts at 2 and stops at its maximum of 8."""
        activity = make_activity(type="digit_span", difficulty_params={"direction": "backward"})

        def reverse_echo(kind, spoken):
            digits = echo_digits(spoken) or ""
            return " ".join(reversed(digits.split()))

        io, ctx = make_ctx(responder=reverse_echo)
        result = await handler.run(activity, ctx)

        assert result.raw_score == 8
        assert result.turn_count == 7
        assert result.details["direction"] == "backward"

    @pytest.mark.asyncio
    async def test_always_wrong_stops_after_two_misses(self, handler, make_activity, make_ctx):
        activity = make_activity(type="digit_span")
        io, ctx = make_ctx(responder=lambda kind, spoken: "banana")

        result = await handler.run(activity, ctx)

        assert result.raw_score == 0
        assert result.score == 0
        assert result.turn_count == 2
        assert "Good try! This one is tricky." in io.spoken


class TestWordList:
    """Tests for the word garden plant/harvest pair."""

    @pytest.mark.asyncio
    async def test_plant_then_harvest_uses_planted_words(self, library, make_ctx):
        """Test harvest recalls against the list planted earlier in the session."""
        plant = library.get("word_garden_plant")
        harvest = library.get("word_garden_harvest")
        planted = WORD_GARDEN_WORDS[:5]
        answer = " ".join(planted)
        io, ctx = make_ctx(answer, answer)

        plant_result = await run_activity(plant, ctx)
        assert ctx.get_session_state().planted_words == planted
        assert plant_result.raw_score == 5
        assert plant_result.score == 100
        assert "Listen carefully. Here are your words: Apple... Bicycle... Sunset... Garden... Music." in io.spoken

        harvest_result = await run_activity(harvest, ctx)
        assert harvest_result.raw_score == 5
        assert harvest_result.details["target_words"] == planted
        assert "Lovely, you harvested 5 words from the garden!" in io.spoken

    @pytest.mark.asyncio
    async def test_harvest_without_plant_uses_default_list(self, library, make_ctx):
        io, ctx = make_ctx("apple sunset")
        result = await run_activity(library.get("word_garden_harvest"), ctx)

        assert result.details["target_words"] == WORD_GARDEN_WORDS
        assert result.details["recalled_words"] == ["apple", "sunset"]

    @pytest.mark.asyncio
    async def test_harvest_scores_by_words_recalled(self, library, make_activity, make_ctx):
        """Test recalling two planted words scores below recalling all three."""
        plant = make_activity(
            type="word_list",
            cognitive_domain="episodic_memory",
            difficulty_params={"words": ["Apple", "Bicycle", "Sunset"]},
            script=["Intro", "Words: {words}", "Go", "Got {count}"],
        )
        harvest = library.get("word_garden_harvest")

        partial_state, full_state = SessionState(), SessionState()
        _, ctx = make_ctx("apple sunset bicycle", state=partial_state)
        await run_activity(plant, ctx)
        _, ctx = make_ctx("apple sunset bicycle", state=full_state)
        await run_activity(plant, ctx)

        _, ctx = make_ctx("I remember apple and sunset", state=partial_state)
        partial = await run_activity(harvest, ctx)
        _, ctx = make_ctx("I remember apple and sunset and a bicycle", state=full_state)
        full = await run_activity(harvest, ctx)

        assert partial.details["recalled_words"] == ["apple", "sunset"]
        assert partial.score < full.score

    @pytest.mark.asyncio
    async def test_explicit_word_param(self, make_activity, make_ctx):
        activity = make_activity(
            type="word_list",
            cognitive_domain="episodic_memory",
            difficulty_params={"words": ["Lantern", "Meadow"]},
            script=["Intro", "Words: {words}", "Go", "Got {count}"],
        )
        io, ctx = make_ctx("meadow")
        result = await run_activity(activity, ctx)

        assert "Words: Lantern... Meadow" in io.spoken
        assert "Got 1" in io.spoken
        assert result.raw_score == 1


class TestVerbalFluency:
    """Tests for timed and association fluency."""

    @pytest.mark.asyncio
    async def test_letter_dash_counts_only_matching_words(self, library, make_ctx):
        io, ctx = make_ctx("fish fox fence apple fish feather fork flag frog fan farm")
        result = await run_activity(library.get("letter_dash"), ctx)

        assert result.raw_score == 9
        assert result.score == 20
        assert "You're doing great, keep going!" in io.spoken
        assert io.listen_kinds == ["duration"]
        assert "Time's up! You came up with 9 words." in io.spoken

    @pytest.mark.asyncio
    async def test_association_scores_by_latency(self, library, make_ctx):
        """Test unanswered prompts count as the slowest latency."""
        activity = library.get("rapid_fire_questions")
        io, ctx = make_ctx(
            ListenResult("blue", 1000),
            ListenResult("seven", 1000),
            ListenResult("", None),
            ListenResult("spring", 1000),
        )
        result = await run_activity(activity, ctx)

        assert result.turn_count == 4
        assert result.response_time_ms == 1500
        assert result.score == 60
        assert result.details["answered"] == 3


class TestGoNoGo:
    """Tests for the go/no-go stream and count variants."""

    @pytest.mark.asyncio
    async def test_animal_spotter_perfect_run(self, library, make_ctx):
        io, ctx = make_ctx(responder=cooperative_responder)
        result = await run_activity(library.get("animal_spotter"), ctx)

        assert result.details == {"hits": 4, "misses": 0, "false_alarms": 0, "correct_rejections": 4}
        assert result.response_time_ms == 800
        assert result.score == 96
        assert io.listen_kinds == ["brief"] * 8

    @pytest.mark.asyncio
    async def test_false_alarms_and_misses(self, library, make_ctx):
        io, ctx = make_ctx("yes", "yes", "", "", "yes", "", "", "")
        result = await run_activity(library.get("animal_spotter"), ctx)

        assert result.details["hits"] == 2
        assert result.details["misses"] == 2
        assert result.details["false_alarms"] == 1
        assert result.details["correct_rejections"] == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize("answer,score", [("three", 100), ("I counted 4", 75), ("", 0)])
    async def test_number_hunter(self, library, make_ctx, answer, score):
        """Test the expected count comes from the spoken stream."""
        io, ctx = make_ctx(answer)
        result = await run_activity(library.get("number_hunter"), ctx)

        assert result.details["expected_count"] == 3
        assert result.score == score


class TestSerialArithmetic:
    """Tests for the countdown challenge."""

    def test_analysis_of_clean_countdown(self):
        analysis = analyze_serial_subtraction("fifty, forty-seven, forty-four", 50, 3)
        assert analysis.numbers == [50, 47, 44]
        assert analysis.correct_count == 3
        assert analysis.errors == 0
        assert analysis.last_number == 44

    def test_skipped_step_still_counts(self):
        analysis = analyze_serial_subtraction("50 47 41 38", 50, 3)
        assert analysis.correct_count == 4
        assert analysis.errors == 0

    def test_slip_resyncs_countdown(self):
        analysis = analyze_serial_subtraction("50 46 43 40", 50, 3)
        assert analysis.errors == 1
        assert analysis.correct_count == 3
        assert analysis.last_number == 40

    @pytest.mark.asyncio
    async def test_handler_speaks_start_and_last(self, library, make_ctx):
        activity = library.get("countdown_challenge")
        io, ctx = make_ctx("fifty, forty-seven, forty-four")
        result = await run_activity(activity, ctx)

        assert io.spoken[0].startswith("Let's count backwards. Start at 50 and keep taking away 3.")
        assert io.spoken[1] == "You're doing great, keep going!"
        assert io.spoken[-1] == "Nice work! You made it all the way to 44."
        assert result.raw_score == 3
        assert result.turn_count == 1

    @pytest.mark.asyncio
    async def test_two_line_script_still_encourages(self, make_activity, make_ctx):
        activity = make_activity(
            type="serial_arithmetic",
            cognitive_domain="complex_attention",
            difficulty_params={"start_number": 20, "subtract_by": 2},
            script=["Start at {start} and take away {step}.", "Keep going!"],
        )
        io, ctx = make_ctx("twenty, eighteen, sixteen")
        result = await run_activity(activity, ctx)

        assert io.spoken[:2] == ["Start at 20 and take away 2.", "Keep going!"]
        assert result.raw_score == 3


class TestTaskSwitching:
    """Tests for category switching and the rule change game."""

    @pytest.mark.asyncio
    async def test_category_switcher(self, library, make_ctx):
        io, ctx = make_ctx("a fruit", "dog", "a tool", "blue", "instrument", "rain", "a flower", "car")
        result = await run_activity(library.get("category_switcher"), ctx)

        assert result.details == {"correct": 8, "total": 8}
        assert result.score == 96

    @pytest.mark.asyncio
    async def test_rule_change_tracks_phases(self, library, make_ctx):
        """Test answers after SWITCH must be reversed."""
        answers = ["big", "small", "big", "small", "small", "big", "small", "big"]
        io, ctx = make_ctx(*answers)
        result = await run_activity(library.get("rule_change_game"), ctx)

        assert result.turn_count == 8
        assert result.details["pre_switch_correct"] == 4
        assert result.details["post_switch_correct"] == 4
        assert result.score == 100

    @pytest.mark.asyncio
    async def test_rule_change_perseveration(self, library, make_ctx):
        answers = ["big", "small", "big", "small", "big", "small", "big", "small"]
        io, ctx = make_ctx(*answers)
        result = await run_activity(library.get("rule_change_game"), ctx)

        assert result.details["post_switch_correct"] == 0
        assert result.details["post_switch_total"] == 4
        assert result.score == 50

    def test_stimulus_needs_whole_word(self):
        sizes = {"Ant": "small", "Elephant": "big"}
        assert find_stimulus("Elephant.", sizes) == ("Elephant", "big")
        assert find_stimulus("Pants.", sizes) is None


class TestInstructionFollowing:
    """Tests for follow the path."""

    def test_step_keywords(self):
        keywords = [["nose"], ["clap"], ["blue", "red"]]
        assert count_completed_steps("I touched my nose, clapped, and I love blue", keywords) == 3
        assert count_completed_steps("I clapped", keywords) == 1
        assert count_completed_steps("ok", keywords) == 1

    @pytest.mark.asyncio
    async def test_handler(self, library, make_ctx):
        io, ctx = make_ctx("I touched my nose and clapped twice, my favorite color is green")
        result = await run_activity(library.get("follow_the_path"), ctx)

        assert result.raw_score == 3
        assert result.score == 100
        assert len(io.spoken) == 4


class TestNBack:
    """Tests for the word match game."""

    def test_match_positions(self):
        words = ["tree", "car", "tree", "book", "lamp", "book"]
        assert match_positions(words, 2) == [False, False, True, False, False, True]

    @pytest.mark.asyncio
    async def test_hits_and_false_alarms(self, library, make_ctx):
        """Test raw score is hits minus false alarms."""
        io, ctx = make_ctx("ready", "", "", "match", "", "", "match", "match", "")
        result = await run_activity(library.get("word_match_game"), ctx)

        assert result.turn_count == 9
        assert result.details["hits"] == 2
        assert result.details["false_alarms"] == 1
        assert result.raw_score == 1
        assert result.score == 100
        assert io.listen_kinds == ["listen"] + ["brief"] * 8


class TestStoryRecall:
    """Tests for story journey."""

    @pytest.mark.asyncio
    async def test_partial_recall(self, library, make_ctx):
        io, ctx = make_ctx("Tuesday", "Paul?", "Maple Street", "three loaves", "I forget")
        result = await run_activity(library.get("story_journey"), ctx)

        assert result.details == {"correct": 3, "detail_count": 5}
        assert result.score == 60
        assert io.spoken[-1].startswith("Thank you!")
