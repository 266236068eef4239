"""
Live voice I/O: the exercise capability set backed by real audio and OpenAI.
"""

from __future__ import annotations

import time
from typing import Any, Optional

from loguru import logger

from coach.activity import Activity
from coach.exercises.base import BriefListenResult, EncourageCallback, ListenResult, LLMReply
from coach.voice.audio import AlsaAudio, ListenWindow, Recording
from coach.voice.services import OpenAIServices


def latency_since(prompt_end: float, recording: Recording) -> int:
    """Time to first speech, or the whole recording when nobody spoke."""
    if recording.first_speech_at is not None:
        return max(0, int((recording.first_speech_at - prompt_end) * 1000))
    return recording.duration_ms


class LiveVoiceIO:
    """Speak through TTS + aplay; listen through arecord + Whisper."""

    def __init__(self, audio: AlsaAudio, services: OpenAIServices, recording: dict[str, Any]):
        self.audio = audio
        self.services = services
        self.recording = recording

    @classmethod
    def from_settings(cls, settings: Any) -> "LiveVoiceIO":
        return cls(
            AlsaAudio.from_settings(settings),
            OpenAIServices.from_settings(settings),
            settings.get_recording_config(),
        )

    def _window(self, initial_seconds: float, extendable: bool = True, stop_on_silence: bool = True) -> ListenWindow:
        cfg = self.recording
        return ListenWindow(
            initial_seconds=initial_seconds,
            max_seconds=cfg["max_seconds"] if extendable else initial_seconds,
            extend_if_speaking_within_ms=cfg["extend_if_speaking_within_ms"] if extendable else 0,
            silence_threshold=cfg["silence_threshold"],
            silence_duration_ms=cfg["silence_duration_ms"],
            stop_on_silence=stop_on_silence,
        )

    def reset_conversation(self) -> None:
        self.services.reset_history()

    async def speak(self, text: str) -> None:
        if not text or not text.strip():
            return
        logger.info(f"Coco: {text}")
        await self.audio.play(await self.services.synthesize(text))

    async def listen(self) -> ListenResult:
        prompt_end = time.monotonic()
        recording = await self.audio.record(self._window(self.recording["initial_seconds"]))
        transcript = await self.services.transcribe(recording)
        return ListenResult(transcript=transcript, latency_ms=latency_since(prompt_end, recording))

    async def listen_brief(self, timeout_ms: int) -> BriefListenResult:
        prompt_end = time.monotonic()
        window = ListenWindow.brief(timeout_ms, silence_threshold=self.recording["silence_threshold"])
        recording = await self.audio.record(window)
        transcript = await self.services.transcribe(recording)
        return BriefListenResult(
            transcript=transcript,
            latency_ms=latency_since(prompt_end, recording),
            has_response=recording.has_heard_speech,
        )

    async def listen_for_duration(
        self, seconds: float, encourage: Optional[EncourageCallback] = None
    ) -> ListenResult:
        """
        Timed listen. With an encourage callback the window is recorded in two
        fixed halves and the callback is spoken between them.
        """
        prompt_end = time.monotonic()
        if encourage is None:
            recording = await self.audio.record(self._window(seconds))
        else:
            half = seconds / 2
            first = await self.audio.record(self._window(half, extendable=False, stop_on_silence=False))
            await encourage()
            second = await self.audio.record(self._window(half, extendable=True, stop_on_silence=False))
            recording = first.concat(second)

        transcript = await self.services.transcribe(recording)
        return ListenResult(transcript=transcript, latency_ms=latency_since(prompt_end, recording))

    async def generate_response(self, user_message: str, activity: Activity, turn_number: int) -> LLMReply:
        return await self.services.generate_response(user_message, activity, turn_number)
