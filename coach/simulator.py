"""
Scripted participant for dry runs and tests.

ScriptedVoiceIO implements the same capability set as LiveVoiceIO but never
touches audio or the network. Listens are answered from a queue of
prepared responses, then from an optional responder callable, then with
silence. Everything spoken is recorded.

Queue entries may be a transcript string, a ListenResult (to control
latency), or an exception instance, which is raised from that listen.
"""

from __future__ import annotations

import re
from collections import deque
from typing import Callable, Iterable, Optional, Union

from coach.activity import Activity
from coach.backend import SessionStartFailedPayload, SessionSummaryPayload
from coach.exercises.base import (
    MAX_TURNS_PER_ACTIVITY,
    BriefListenResult,
    EncourageCallback,
    ListenResult,
    LLMReply,
)

# (listen kind, last line spoken) -> transcript
Responder = Callable[[str, str], str]
ScriptedResponse = Union[str, ListenResult, BaseException]

DEFAULT_LATENCY_MS = 800
DEFAULT_REPLY = "Thank you for sharing that."


class ScriptedVoiceIO:
    """In-memory participant driven by prepared answers."""

    def __init__(
        self,
        responses: Iterable[ScriptedResponse] = (),
        responder: Optional[Responder] = None,
        latency_ms: int = DEFAULT_LATENCY_MS,
        llm_replies: Iterable[LLMReply] = (),
    ):
        self.queue: deque[ScriptedResponse] = deque(responses)
        self.responder = responder
        self.latency_ms = latency_ms
        self.llm_replies: deque[LLMReply] = deque(llm_replies)
        self.spoken: list[str] = []
        self.heard: list[str] = []
        self.listen_kinds: list[str] = []
        self.conversation_resets = 0

    @property
    def last_spoken(self) -> str:
        return self.spoken[-1] if self.spoken else ""

    def _next(self, kind: str) -> ListenResult:
        self.listen_kinds.append(kind)
        if self.queue:
            item = self.queue.popleft()
        elif self.responder:
            item = self.responder(kind, self.last_spoken)
        else:
            item = ""

        if isinstance(item, BaseException):
            raise item
        if isinstance(item, ListenResult):
            result = item
        else:
            result = ListenResult(transcript=item, latency_ms=self.latency_ms if item.strip() else None)
        self.heard.append(result.transcript)
        return result

    def reset_conversation(self) -> None:
        self.conversation_resets += 1

    async def speak(self, text: str) -> None:
        self.spoken.append(text)

    async def listen(self) -> ListenResult:
        return self._next("listen")

    async def listen_brief(self, timeout_ms: int) -> BriefListenResult:
        result = self._next("brief")
        return BriefListenResult(
            transcript=result.transcript,
            latency_ms=result.latency_ms,
            has_response=result.has_speech,
        )

    async def listen_for_duration(
        self, seconds: float, encourage: Optional[EncourageCallback] = None
    ) -> ListenResult:
        if encourage is not None:
            await encourage()
        return self._next("duration")

    async def generate_response(self, user_message: str, activity: Activity, turn_number: int) -> LLMReply:
        reply = self.llm_replies.popleft() if self.llm_replies else LLMReply(text=DEFAULT_REPLY)
        if turn_number >= MAX_TURNS_PER_ACTIVITY - 1:
            reply = LLMReply(text=reply.text, should_follow_up=False)
        return reply


# =============================================================================
# Personas for `coach simulate`
# =============================================================================

_DIGITS_PROMPT = re.compile(r"^Here are your numbers:\s*(.+)$")


def echo_digits(last_spoken: str) -> Optional[str]:
    """The digits just presented, repeated in order."""
    match = _DIGITS_PROMPT.match(last_spoken)
    if not match:
        return None
    return " ".join(re.findall(r"\d", match.group(1)))


def cooperative_responder(kind: str, last_spoken: str) -> str:
    """A willing participant giving plausible, talkative answers."""
    digits = echo_digits(last_spoken)
    if digits is not None:
        return digits
    if kind == "brief":
        return "yes" if re.search(r"\b(dog|cat|horse|bird|lion|bear)\b", last_spoken.lower()) else ""
    if kind == "duration":
        return "fifty forty-seven forty-four forty-one thirty-eight apple banana basket bicycle"
    return "I remember the apple tree in our garden and riding my bicycle at sunset with music playing."


def silent_responder(kind: str, last_spoken: str) -> str:
    return ""


def quitting_responder(after_listens: int) -> Responder:
    """Cooperative until after_listens answers, then asks to stop."""
    count = 0

    def respond(kind: str, last_spoken: str) -> str:
        nonlocal count
        count += 1
        if count > after_listens:
            return "that's all for today"
        return cooperative_responder(kind, last_spoken)

    return respond


PERSONAS: dict[str, Callable[[], Responder]] = {
    "cooperative": lambda: cooperative_responder,
    "silent": lambda: silent_responder,
    "quitter": lambda: quitting_responder(12),
}


class RecordingBackend:
    """Backend stand-in that keeps every payload instead of posting it."""

    def __init__(self, fail_with: Optional[BaseException] = None):
        self.fail_with = fail_with
        self.summaries: list[SessionSummaryPayload] = []
        self.start_failures: list[SessionStartFailedPayload] = []

    async def __aenter__(self) -> "RecordingBackend":
        return self

    async def __aexit__(self, *exc_info) -> None:
        return None

    async def send_session_summary(self, payload: SessionSummaryPayload) -> bool:
        self.summaries.append(payload)
        if self.fail_with is not None:
            raise self.fail_with
        return True

    async def send_session_start_failed(self, payload: SessionStartFailedPayload) -> bool:
        self.start_failures.append(payload)
        return True
