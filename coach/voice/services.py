"""
OpenAI-backed speech and language services.

- synthesize(): text -> raw PCM (tts-1 / nova by default)
- transcribe(): Recording -> text, skipping recordings with no real speech
  and dropping known Whisper hallucinations on silence
- generate_response(): follow-up decision for conversational activities
"""

from __future__ import annotations

import json
import re
import time
from typing import Any, Optional

import openai
from loguru import logger

from coach.activity import Activity
from coach.exercises.base import MAX_TURNS_PER_ACTIVITY, LLMReply
from coach.retry import with_retry
from coach.voice.audio import Recording, create_wav_buffer

SYSTEM_PROMPT = """You are Coco, a warm and supportive cognitive companion for older adults. You run 15-minute cognitive stimulation sessions.

Your personality:
- Warm, patient, and genuinely interested
- Use simple, clear language
- Keep responses brief (1-2 sentences)
- Never be condescending

Your job is to gently guide conversation and cognitive exercises, drawing out memories and stories from the participant."""

FALLBACK_REPLY = "Thank you for sharing that."

# Whisper output on silence or background noise
HALLUCINATION_PHRASES = [
    "thanks for watching",
    "thank you for watching",
    "subscribe",
    "like and subscribe",
    "silence",
    "sous-titres",
    "subtitles",
    "amara.org",
    "electric unicorn",
    "please subscribe",
    "see you next time",
    "bye bye",
    "the end",
    "music",
    "applause",
]

MIN_TRANSCRIBE_BYTES = 4800

_CODE_FENCE = re.compile(r"```json\n?|\n?```")


def is_hallucination(text: str) -> bool:
    lower = text.lower().strip()
    if len(lower) < 3:
        return True
    return any(phrase in lower for phrase in HALLUCINATION_PHRASES)


def parse_llm_reply(raw: str) -> LLMReply:
    """Parse the model's {"text", "followUp"} JSON; plain text means no follow-up."""
    try:
        data = json.loads(_CODE_FENCE.sub("", raw).strip())
    except json.JSONDecodeError:
        logger.debug("LLM: reply was not JSON, using raw text")
        return LLMReply(text=raw, should_follow_up=False)
    if not isinstance(data, dict) or not str(data.get("text", "")).strip():
        return LLMReply(text=FALLBACK_REPLY, should_follow_up=False)
    return LLMReply(text=str(data["text"]), should_follow_up=bool(data.get("followUp", False)))


def build_turn_prompt(user_message: str, activity: Activity, turn_number: int, max_turns: int) -> str:
    next_prompt = activity.line(turn_number + 1) if turn_number + 1 < len(activity.script) else ""
    lines = [
        f"Activity: {activity.title or activity.cognitive_domain.value}",
        f"Goal: {activity.goal or 'Engage the participant'}",
        f"Instructions: {activity.instructions or 'Draw out their story'}",
    ]
    if next_prompt:
        lines.append(f'Suggested follow-up: "{next_prompt}"')
    lines += [
        "",
        f'The participant just said: "{user_message}"',
        "",
        "Decide whether to follow up or move on:",
        "",
        "MOVE ON (followUp=false) if:",
        "- They gave a negative/dismissive response",
        "- They've shared something meaningful",
        "- They seem disengaged",
        f"- This is turn {turn_number + 1} of {max_turns}",
        "",
        "FOLLOW UP (followUp=true) ONLY if:",
        "- Their response is brief but positive",
        "- There's opportunity to draw out more",
    ]
    if turn_number >= max_turns - 1:
        lines += ["", "This is the LAST turn - set followUp=false."]
    lines += ["", 'Respond with JSON: {"text": "your response", "followUp": true/false}']
    return "\n".join(lines)


class OpenAIServices:
    """TTS, STT and chat calls with the shared retry policy."""

    def __init__(
        self,
        client: openai.AsyncOpenAI,
        llm_model: str = "gpt-4o-mini",
        tts_model: str = "tts-1",
        tts_voice: str = "nova",
        stt_model: str = "whisper-1",
        stt_language: str = "en",
        sample_rate: int = 24000,
        channels: int = 1,
        min_speech_rms: float = 300,
        max_retries: int = 2,
        retry_delay_seconds: float = 0.5,
        max_turns: int = MAX_TURNS_PER_ACTIVITY,
    ):
        self.client = client
        self.llm_model = llm_model
        self.tts_model = tts_model
        self.tts_voice = tts_voice
        self.stt_model = stt_model
        self.stt_language = stt_language
        self.sample_rate = sample_rate
        self.channels = channels
        self.min_speech_rms = min_speech_rms
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds
        self.max_turns = max_turns
        self.history: list[dict[str, str]] = []

    @classmethod
    def from_settings(cls, settings: Any) -> "OpenAIServices":
        retry = settings.get_retry_config()
        # Retries are ours, not the SDK's
        client = openai.AsyncOpenAI(timeout=settings.api_timeout_ms / 1000.0, max_retries=0)
        return cls(
            client,
            llm_model=settings.llm_model,
            tts_model=settings.tts_model,
            tts_voice=settings.tts_voice,
            stt_model=settings.stt_model,
            stt_language=settings.stt_language,
            sample_rate=settings.sample_rate,
            channels=settings.channels,
            min_speech_rms=settings.min_speech_rms,
            max_retries=retry["max_retries"],
            retry_delay_seconds=retry["delay_seconds"],
        )

    async def _retry(self, operation, label: str):
        return await with_retry(
            operation, label, max_retries=self.max_retries, delay_seconds=self.retry_delay_seconds
        )

    def reset_history(self) -> None:
        self.history.clear()

    def remember(self, role: str, content: str) -> None:
        self.history.append({"role": role, "content": content})

    async def synthesize(self, text: str) -> bytes:
        logger.debug(f"TTS: \"{text[:60]}{'...' if len(text) > 60 else ''}\"")
        start = time.monotonic()
        response = await self._retry(
            lambda: self.client.audio.speech.create(
                model=self.tts_model,
                voice=self.tts_voice,
                input=text,
                response_format="pcm",
            ),
            "TTS",
        )
        audio = response.content
        logger.debug(f"TTS: {len(audio)} bytes in {int((time.monotonic() - start) * 1000)}ms")
        return audio

    async def transcribe(self, recording: Recording) -> str:
        """Transcript of the recording, or "" when there was nothing worth sending."""
        if not recording.has_heard_speech:
            logger.debug("STT: skipped, no speech detected")
            return ""
        if recording.peak_rms < self.min_speech_rms:
            logger.debug(f"STT: skipped, too quiet (peakRMS={round(recording.peak_rms)})")
            return ""
        if len(recording.buffer) < MIN_TRANSCRIBE_BYTES:
            logger.debug("STT: skipped, buffer too small")
            return ""

        start = time.monotonic()
        wav = create_wav_buffer(recording.buffer, self.sample_rate, self.channels)
        response = await self._retry(
            lambda: self.client.audio.transcriptions.create(
                model=self.stt_model,
                file=("audio.wav", wav, "audio/wav"),
                language=self.stt_language,
            ),
            "STT",
        )
        text = response.text.strip()
        if is_hallucination(text):
            logger.debug(f"STT: filtered hallucination \"{text}\"")
            return ""
        logger.debug(f"STT: \"{text}\" in {int((time.monotonic() - start) * 1000)}ms")
        return text

    async def generate_response(
        self,
        user_message: str,
        activity: Activity,
        turn_number: int,
        max_turns: Optional[int] = None,
    ) -> LLMReply:
        """
        Reply to the participant and decide whether to follow up.

        Never raises for API trouble: a failed call degrades to a neutral
        acknowledgement that moves on.
        """
        max_turns = max_turns or self.max_turns
        if user_message:
            self.remember("user", user_message)

        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            *self.history,
            {"role": "user", "content": build_turn_prompt(user_message, activity, turn_number, max_turns)},
        ]
        try:
            response = await self._retry(
                lambda: self.client.chat.completions.create(
                    model=self.llm_model,
                    messages=messages,
                    max_tokens=200,
                    temperature=0.7,
                ),
                "LLM",
            )
        except openai.OpenAIError as e:
            logger.warning(f"LLM: falling back after error: {e}")
            return LLMReply(text=FALLBACK_REPLY, should_follow_up=False)

        content = (response.choices[0].message.content or "").strip() if response.choices else ""
        reply = parse_llm_reply(content) if content else LLMReply(text=FALLBACK_REPLY)
        if turn_number >= max_turns - 1:
            reply.should_follow_up = False

        self.remember("assistant", reply.text)
        logger.debug(f"LLM: \"{reply.text[:50]}...\" followUp={reply.should_follow_up}")
        return reply
