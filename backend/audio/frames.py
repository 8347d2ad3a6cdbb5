"""
Outbound chunk primitives.

Pure data containers only.
No behavior beyond describing their own wire media type.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from constants import INPUT_SAMPLE_RATE_HZ, VIDEO_FRAME_MIME


class ChunkKind(str, Enum):
    """Which realtime input stream a chunk belongs to."""
    AUDIO = "audio"
    VIDEO = "video"


@dataclass(frozen=True)
class AudioChunk:
    """
    Captured microphone audio.

    pcm_bytes:
        Raw PCM16 LE mono samples at sample_rate_hz.
    """
    pcm_bytes: bytes
    sample_rate_hz: int = INPUT_SAMPLE_RATE_HZ

    kind = ChunkKind.AUDIO

    @property
    def payload(self) -> bytes:
        return self.pcm_bytes

    @property
    def mime_type(self) -> str:
        return f"audio/pcm;rate={self.sample_rate_hz}"


@dataclass(frozen=True)
class VideoFrame:
    """A compressed still image from the camera feed."""
    image_bytes: bytes
    mime_type: str = VIDEO_FRAME_MIME

    kind = ChunkKind.VIDEO

    @property
    def payload(self) -> bytes:
        return self.image_bytes


OutboundChunk = AudioChunk | VideoFrame
