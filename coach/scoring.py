"""
Scoring utilities.

Pure functions shared by the exercise handlers: normalization onto 0-100,
composite scores, latency scaling, and the spoken-number / word-list
parsing used by the recall exercises.
"""
from __future__ import annotations

import random
import re
from dataclasses import dataclass
from typing import Iterable, Sequence

# Latency window for speed scoring (ms): at or below MIN scores 100, at or above MAX scores 0
LATENCY_FAST_MS = 500
LATENCY_SLOW_MS = 3000

UNITS = {
    "zero": 0, "one": 1, "two": 2, "three": 3, "four": 4, "five": 5,
    "six": 6, "seven": 7, "eight": 8, "nine": 9, "ten": 10,
    "eleven": 11, "twelve": 12, "thirteen": 13, "fourteen": 14, "fifteen": 15,
    "sixteen": 16, "seventeen": 17, "eighteen": 18, "nineteen": 19,
}
TENS = {
    "twenty": 20, "thirty": 30, "forty": 40, "fifty": 50,
    "sixty": 60, "seventy": 70, "eighty": 80, "ninety": 90,
}

_TOKEN_SPLIT = re.compile(r"[\s,;.!?-]+")


def normalize_score(raw: float, min_expected: float, max_expected: float) -> int:
    """Linearly map raw onto 0-100 between the expected bounds (clamped)."""
    if max_expected == min_expected:
        return 50
    normalized = (raw - min_expected) / (max_expected - min_expected) * 100
    return round(max(0.0, min(100.0, normalized)))


def normalize_accuracy(correct: int, total: int) -> int:
    if total == 0:
        return 0
    return round(correct / total * 100)


def normalize_latency(latency_ms: float) -> int:
    """Lower latency scores higher."""
    if latency_ms <= LATENCY_FAST_MS:
        return 100
    if latency_ms >= LATENCY_SLOW_MS:
        return 0
    return round((LATENCY_SLOW_MS - latency_ms) / (LATENCY_SLOW_MS - LATENCY_FAST_MS) * 100)


def compute_composite_score(parts: Iterable[tuple[float, float]]) -> int:
    """
    Weighted mean of (value, weight) pairs.

    Example:
        compute_composite_score([(accuracy, 2), (normalize_latency(ms), 1)])
    """
    parts = list(parts)
    if not parts:
        return 0
    total_weight = sum(weight for _, weight in parts)
    if total_weight <= 0:
        return 0
    return round(sum(value * weight for value, weight in parts) / total_weight)


def average(values: Sequence[float]) -> int | None:
    """Rounded mean, or None for an empty sequence."""
    if not values:
        return None
    return round(sum(values) / len(values))


def calculate_trend(scores: Sequence[float]) -> str:
    """Compare first-half and second-half means: improving, stable or declining."""
    if len(scores) < 3:
        return "stable"
    midpoint = len(scores) // 2
    first, second = scores[:midpoint], scores[midpoint:]
    difference = sum(second) / len(second) - sum(first) / len(first)
    if difference > 5:
        return "improving"
    if difference < -5:
        return "declining"
    return "stable"


@dataclass
class TimingStats:
    count: int = 0
    total_ms: int = 0
    average_ms: int = 0
    min_ms: int = 0
    max_ms: int = 0


def calculate_timing_stats(latencies: Sequence[int]) -> TimingStats:
    if not latencies:
        return TimingStats()
    total = sum(latencies)
    return TimingStats(
        count=len(latencies),
        total_ms=total,
        average_ms=round(total / len(latencies)),
        min_ms=min(latencies),
        max_ms=max(latencies),
    )


# =============================================================================
# Spoken numbers
# =============================================================================


def tokenize(text: str) -> list[str]:
    return [t for t in _TOKEN_SPLIT.split(text.lower()) if t]


def parse_spoken_digits(text: str) -> list[int]:
    """
    Parse a spoken digit sequence.

    "4 7 2", "four seven two" and "472" all give [4, 7, 2].
    """
    digits: list[int] = []
    for token in tokenize(text):
        if token.isdigit():
            digits.extend(int(ch) for ch in token)
        elif token in UNITS and UNITS[token] <= 9:
            digits.append(UNITS[token])
        elif token == "oh":
            digits.append(0)
    return digits


def compare_digit_sequences(spoken: str, expected: Sequence[int], direction: str = "forward") -> bool:
    """True when the spoken digits reproduce expected (reversed for 'backward')."""
    target = list(reversed(expected)) if direction == "backward" else list(expected)
    return parse_spoken_digits(spoken) == target


def extract_numbers(text: str) -> list[int]:
    """
    Extract whole numbers from free-form speech.

    Handles digits ("47"), single words ("twelve"), compounds
    ("forty-seven", "forty seven") and hundreds ("one hundred and two").
    A new number starts whenever a word cannot extend the pending one.
    """
    numbers: list[int] = []
    pending: int | None = None
    stage = ""  # "units", "tens" or "hundred" for the pending number

    def flush() -> None:
        nonlocal pending, stage
        if pending is not None:
            numbers.append(pending)
        pending, stage = None, ""

    for token in tokenize(text):
        if token.isdigit():
            flush()
            numbers.append(int(token))
            continue
        if token == "hundred":
            if pending is not None and stage == "units" and 0 < pending < 10:
                pending *= 100
                stage = "hundred"
            else:
                flush()
                pending, stage = 100, "hundred"
            continue
        if token == "and" and stage == "hundred":
            continue

        value = UNITS.get(token, TENS.get(token))
        if value is None:
            flush()
            continue

        if pending is not None and stage == "hundred" and value < 100:
            pending += value
            stage = "tens" if token in TENS else "units"
        elif pending is not None and stage == "tens" and pending % 10 == 0 and 1 <= value <= 9:
            pending += value
            stage = "units"
        else:
            flush()
            pending = value
            stage = "tens" if token in TENS else "units"

    flush()
    return numbers


def first_number(text: str) -> int | None:
    numbers = extract_numbers(text)
    return numbers[0] if numbers else None


# =============================================================================
# Words
# =============================================================================


def count_unique_words(text: str) -> list[str]:
    """Unique alphabetic words (>= 2 letters), lower-cased, in first-spoken order."""
    seen: dict[str, None] = {}
    for token in tokenize(text):
        if len(token) >= 2 and token.isalpha() and token.isascii():
            seen.setdefault(token, None)
    return list(seen)


def match_recalled_words(transcript: str, targets: Sequence[str]) -> list[str]:
    """Target words present in the transcript (case-insensitive), in spoken order."""
    wanted = {t.lower() for t in targets}
    return [w for w in count_unique_words(transcript) if w in wanted]


def contains_any(text: str, keywords: Iterable[str]) -> bool:
    lower = text.lower()
    return any(k.lower() in lower for k in keywords)


def generate_digit_sequence(length: int, rng: random.Random | None = None) -> list[int]:
    rng = rng or random
    return [rng.randint(0, 9) for _ in range(length)]


def split_stimuli(line: str) -> list[str]:
    """
    Stimulus list from a script line of the form "Here we go: Table... Dog... Window".

    Everything after the first colon is split on ellipses and commas.
    """
    _, sep, rest = line.partition(":")
    if not sep:
        return []
    return [s.strip(" .") for s in re.split(r"\.\.\.|…|,", rest) if s.strip(" .")]
