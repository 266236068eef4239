"""Live audio and speech services for on-device sessions."""

from coach.voice.audio import AlsaAudio, ListenWindow, Recording
from coach.voice.live import LiveVoiceIO
from coach.voice.services import OpenAIServices

__all__ = ["AlsaAudio", "ListenWindow", "LiveVoiceIO", "OpenAIServices", "Recording"]
