"""
Unit tests for scoring utilities.
"""

import random

import pytest

from coach.scoring import (
    calculate_timing_stats,
    calculate_trend,
    compare_digit_sequences,
    compute_composite_score,
    count_unique_words,
    extract_numbers,
    first_number,
    generate_digit_sequence,
    match_recalled_words,
    normalize_accuracy,
    normalize_latency,
    normalize_score,
    parse_spoken_digits,
    split_stimuli,
)


class TestNormalizeScore:
    """Tests for linear normalization onto 0-100."""

    @pytest.mark.parametrize(
        "raw,low,high,expected",
        [
            (3, 3, 9, 0),
            (9, 3, 9, 100),
            (6, 3, 9, 50),
            (1, 3, 9, 0),
            (12, 3, 9, 100),
        ],
    )
    def test_linear_and_clamped(self, raw, low, high, expected):
        """Test values map linearly and clamp at the bounds."""
        assert normalize_score(raw, low, high) == expected

    def test_equal_bounds_is_neutral(self):
        """Test a degenerate range scores 50 instead of dividing by zero."""
        assert normalize_score(4, 4, 4) == 50

    def test_accuracy_with_no_trials(self):
        assert normalize_accuracy(0, 0) == 0
        assert normalize_accuracy(3, 4) == 75


class TestLatency:
    """Tests for latency scoring."""

    def test_fast_and_slow_limits(self):
        """Test the fast limit scores 100 and the slow limit 0."""
        assert normalize_latency(400) == 100
        assert normalize_latency(500) == 100
        assert normalize_latency(3000) == 0
        assert normalize_latency(5000) == 0

    def test_midpoint(self):
        assert normalize_latency(1750) == 50

    def test_timing_stats(self):
        stats = calculate_timing_stats([1000, 2000, 3000])
        assert stats.count == 3
        assert stats.average_ms == 2000
        assert stats.min_ms == 1000
        assert stats.max_ms == 3000
        assert calculate_timing_stats([]).count == 0


class TestComposite:
    """Tests for weighted composites."""

    def test_weighted_mean(self):
        """Test accuracy weighted twice as heavily as speed."""
        assert compute_composite_score([(90, 2), (60, 1)]) == 80

    def test_empty_is_zero(self):
        assert compute_composite_score([]) == 0


class TestTrend:
    """Tests for score trend detection."""

    def test_short_history_is_stable(self):
        assert calculate_trend([10, 90]) == "stable"

    def test_improving_and_declining(self):
        assert calculate_trend([40, 45, 70, 80]) == "improving"
        assert calculate_trend([80, 70, 45, 40]) == "declining"
        assert calculate_trend([50, 52, 51, 50]) == "stable"


class TestSpokenDigits:
    """Tests for digit sequence parsing."""

    @pytest.mark.parametrize("spoken", ["4 7 2", "four seven two", "472", "Four, seven, two."])
    def test_forms(self, spoken):
        """Test numerals, number words and run-together digits all parse."""
        assert parse_spoken_digits(spoken) == [4, 7, 2]

    def test_backward_comparison(self):
        """Test backward sequences must be spoken reversed."""
        assert compare_digit_sequences("two seven four", [4, 7, 2], "backward")
        assert not compare_digit_sequences("four seven two", [4, 7, 2], "backward")

    def test_generated_sequence_length(self):
        digits = generate_digit_sequence(6, random.Random(1))
        assert len(digits) == 6
        assert all(0 <= d <= 9 for d in digits)


class TestExtractNumbers:
    """Tests for free-form number extraction."""

    def test_compound_words(self):
        """Test consecutive compound numbers are split correctly."""
        assert extract_numbers("fifty forty-seven") == [50, 47]
        assert extract_numbers("fifty, forty-seven, forty-four") == [50, 47, 44]

    def test_spaced_compounds(self):
        assert extract_numbers("forty seven forty four") == [47, 44]

    def test_hundreds(self):
        assert extract_numbers("one hundred and two") == [102]
        assert extract_numbers("a hundred ninety three") == [193]

    def test_mixed_digits_and_words(self):
        assert extract_numbers("50 then forty-seven, um, 44") == [50, 47, 44]

    def test_first_number(self):
        assert first_number("I think three of them") == 3
        assert first_number("no idea") is None


class TestWords:
    """Tests for word extraction and recall matching."""

    def test_unique_words_in_spoken_order(self):
        assert count_unique_words("Fish, fox, FISH, a fence") == ["fish", "fox", "fence"]

    def test_recall_is_case_insensitive(self):
        """Test recalled words match targets regardless of case."""
        recalled = match_recalled_words("um apple and the garden, maybe music", ["Apple", "Garden", "Sunset"])
        assert recalled == ["apple", "garden"]

    def test_split_stimuli(self):
        assert split_stimuli("Here we go: Dog... Chair... Cat") == ["Dog", "Chair", "Cat"]
        assert split_stimuli("No colon here") == []
