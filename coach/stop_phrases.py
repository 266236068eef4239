"""
Stop-phrase detection.

Used for the readiness answer and for every activity transcript. Short
phrases ("bye") only count when spoken on their own or followed by a
closing word ("bye now", "bye coco"), so ordinary sentences that happen
to contain them do not end the session.
"""

import re

STOP_PHRASES: tuple[str, ...] = (
    "stop session",
    "end session",
    "goodbye",
    "bye",
    "that's all",
    "i'm done",
    "i want to stop",
)

SHORT_PHRASE_MAX_CHARS = 4


def _compile(phrase: str) -> re.Pattern[str]:
    escaped = re.escape(phrase)
    if len(phrase) <= SHORT_PHRASE_MAX_CHARS:
        return re.compile(rf"^{escaped}[.!]?$|^{escaped}\s+(now|for now|coco|there)\b")
    return re.compile(rf"\b{escaped}\b")


_PATTERNS = [_compile(p) for p in STOP_PHRASES]


def normalize_transcript(text: str) -> str:
    """Lower-case, trim and straighten typographic apostrophes."""
    return text.replace("’", "'").lower().strip()


def check_stop_phrase(text: str | None) -> bool:
    """True if the utterance asks to end the session."""
    if not text:
        return False
    lower = normalize_transcript(text)
    return any(lower == phrase or pattern.search(lower) for phrase, pattern in zip(STOP_PHRASES, _PATTERNS))


def find_stop_phrase(transcripts) -> str | None:
    """First transcript containing a stop phrase, if any."""
    return next((t for t in transcripts if check_stop_phrase(t)), None)
