"""
ALSA playback and capture.

Audio is raw 16-bit little-endian PCM piped through aplay/arecord. A
ListenWindow decides when a recording ends: after sustained silence once
speech has been heard, or at the window cap, which is extended once (to
the hard maximum) if the participant was still talking when it was hit.
"""

from __future__ import annotations

import asyncio
import io
import time
import wave
from dataclasses import dataclass
from typing import Any, Optional

import numpy as np
from loguru import logger

from coach.errors import AudioDeviceError

BYTES_PER_SAMPLE = 2  # S16_LE


def calculate_rms(chunk: bytes) -> float:
    """Root-mean-square amplitude of a 16-bit PCM chunk."""
    usable = len(chunk) - len(chunk) % BYTES_PER_SAMPLE
    if usable <= 0:
        return 0.0
    samples = np.frombuffer(chunk[:usable], dtype="<i2").astype(np.float64)
    return float(np.sqrt(np.mean(samples * samples)))


def create_wav_buffer(pcm: bytes, sample_rate: int, channels: int) -> bytes:
    """Wrap raw PCM in a WAV container for transcription."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(channels)
        wav.setsampwidth(BYTES_PER_SAMPLE)
        wav.setframerate(sample_rate)
        wav.writeframes(pcm)
    return buffer.getvalue()


@dataclass
class Recording:
    """Captured audio plus the speech-energy facts gathered while recording."""
    buffer: bytes = b""
    has_heard_speech: bool = False
    peak_rms: float = 0.0
    first_speech_at: Optional[float] = None  # time.monotonic()
    duration_ms: int = 0

    def concat(self, other: "Recording") -> "Recording":
        return Recording(
            buffer=self.buffer + other.buffer,
            has_heard_speech=self.has_heard_speech or other.has_heard_speech,
            peak_rms=max(self.peak_rms, other.peak_rms),
            first_speech_at=self.first_speech_at if self.first_speech_at is not None else other.first_speech_at,
            duration_ms=self.duration_ms + other.duration_ms,
        )


class ListenWindow:
    """
    Stop policy for one recording.

    Feed it the RMS of each chunk as it arrives and ask should_stop().
    Times are time.monotonic() seconds.
    """

    def __init__(
        self,
        initial_seconds: float,
        max_seconds: float,
        extend_if_speaking_within_ms: int = 3000,
        silence_threshold: float = 500,
        silence_duration_ms: int = 2500,
        stop_on_silence: bool = True,
        started_at: Optional[float] = None,
    ):
        self.initial_seconds = initial_seconds
        self.max_seconds = max(max_seconds, initial_seconds)
        self.extend_if_speaking_within_ms = extend_if_speaking_within_ms
        self.silence_threshold = silence_threshold
        self.silence_duration_ms = silence_duration_ms
        self.stop_on_silence = stop_on_silence
        self.started_at = time.monotonic() if started_at is None else started_at

        self.cap_seconds = initial_seconds
        self.extended = False
        self.has_heard_speech = False
        self.peak_rms = 0.0
        self.first_speech_at: Optional[float] = None
        self.stop_reason: Optional[str] = None
        self._last_speech_at: Optional[float] = None
        self._silence_since: Optional[float] = None

    @classmethod
    def brief(cls, timeout_ms: int, silence_threshold: float = 500, **kwargs: Any) -> "ListenWindow":
        """Fixed window that never extends and ignores silence."""
        seconds = timeout_ms / 1000.0
        return cls(
            seconds,
            seconds,
            extend_if_speaking_within_ms=0,
            silence_threshold=silence_threshold,
            stop_on_silence=False,
            **kwargs,
        )

    def feed(self, rms: float, now: float) -> None:
        self.peak_rms = max(self.peak_rms, rms)
        if rms >= self.silence_threshold:
            if not self.has_heard_speech:
                self.first_speech_at = now
            self.has_heard_speech = True
            self._last_speech_at = now
            self._silence_since = None
        elif self.has_heard_speech:
            if self._silence_since is None:
                self._silence_since = now
            elif self.stop_on_silence and (now - self._silence_since) * 1000 > self.silence_duration_ms:
                self.stop_reason = "silence"

    def should_stop(self, now: float) -> bool:
        if self.stop_reason:
            return True

        elapsed = now - self.started_at
        if elapsed >= self.max_seconds:
            self.stop_reason = "max"
            return True
        if elapsed < self.cap_seconds:
            return False

        still_speaking = (
            self._last_speech_at is not None
            and (now - self._last_speech_at) * 1000 < self.extend_if_speaking_within_ms
        )
        if not self.extended and still_speaking:
            self.extended = True
            self.cap_seconds = self.max_seconds
            logger.debug(f"Record: extended to {self.max_seconds}s")
            return False

        self.stop_reason = "cap"
        return True


class AlsaAudio:
    """Plays and records raw PCM through aplay/arecord."""

    def __init__(
        self,
        sample_rate: int = 24000,
        channels: int = 1,
        sample_format: str = "S16_LE",
        output_device: str = "pulse",
        input_device: str = "pulse",
        disabled: bool = False,
        chunk_ms: int = 100,
    ):
        self.sample_rate = sample_rate
        self.channels = channels
        self.sample_format = sample_format
        self.output_device = output_device
        self.input_device = input_device
        self.disabled = disabled
        self.chunk_bytes = int(sample_rate * channels * BYTES_PER_SAMPLE * chunk_ms / 1000)

    @classmethod
    def from_settings(cls, settings: Any) -> "AlsaAudio":
        cfg = settings.get_audio_config()
        return cls(
            sample_rate=cfg["sample_rate"],
            channels=cfg["channels"],
            sample_format=cfg["sample_format"],
            output_device=cfg["output_device"],
            input_device=cfg["input_device"],
            disabled=cfg["disabled"],
        )

    def _pcm_args(self, device: str) -> list[str]:
        return [
            "-t", "raw", "-f", self.sample_format, "-c", str(self.channels),
            "-r", str(self.sample_rate), "-q", "-D", device, "-",
        ]

    async def play(self, pcm: bytes) -> None:
        if self.disabled:
            logger.debug(f"Play: [disabled] would play {len(pcm)} bytes")
            return

        start = time.monotonic()
        try:
            proc = await asyncio.create_subprocess_exec(
                "aplay", *self._pcm_args(self.output_device),
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            raise AudioDeviceError(f"Cannot start aplay: {e}") from e

        await proc.communicate(pcm)
        if proc.returncode != 0:
            raise AudioDeviceError(f"aplay exited with code {proc.returncode}")
        logger.debug(f"Play: {len(pcm)} bytes in {int((time.monotonic() - start) * 1000)}ms")

    async def record(self, window: ListenWindow) -> Recording:
        """Record until the window says stop."""
        if self.disabled:
            logger.debug("Record: [disabled] returning empty recording")
            return Recording()

        try:
            proc = await asyncio.create_subprocess_exec(
                "arecord", *self._pcm_args(self.input_device),
                stdout=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise AudioDeviceError(f"Cannot start arecord: {e}") from e

        if proc.stdout is None:
            raise AudioDeviceError("arecord started without a stdout pipe")

        chunks: list[bytes] = []
        try:
            while True:
                chunk = await proc.stdout.read(self.chunk_bytes)
                if not chunk:
                    break
                now = time.monotonic()
                chunks.append(chunk)
                window.feed(calculate_rms(chunk), now)
                if window.should_stop(now):
                    break
        finally:
            if proc.returncode is None:
                try:
                    proc.terminate()
                except ProcessLookupError:
                    pass
            await proc.wait()

        recording = Recording(
            buffer=b"".join(chunks),
            has_heard_speech=window.has_heard_speech,
            peak_rms=window.peak_rms,
            first_speech_at=window.first_speech_at,
            duration_ms=int((time.monotonic() - window.started_at) * 1000),
        )
        logger.debug(
            f"Record: {len(recording.buffer)} bytes, peakRMS={round(recording.peak_rms)}, "
            f"speech={recording.has_heard_speech}, stop={window.stop_reason or 'eof'}"
        )
        return recording
