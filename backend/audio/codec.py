"""
Audio codec utility.

Pure functions for the live link's audio payloads:
- bytes <-> transport-safe text (base64)
- PCM16 payload -> playable float32 buffer

No hidden state.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass

import numpy as np

from audio.pcm import pcm16le_to_float32
from audio.resample import resample_float32
from constants import (
    AUDIO_SAMPLE_WIDTH_BYTES,
    OUTPUT_CHANNELS,
    OUTPUT_SAMPLE_RATE_HZ,
)


class DecodeError(ValueError):
    """Inbound payload could not be turned into audio."""


@dataclass(frozen=True)
class PlayableBuffer:
    """
    Decoded audio ready for scheduling.

    samples:
        float32 array shaped (frames, channels), values in [-1.0, 1.0).
    """
    samples: np.ndarray
    sample_rate_hz: int
    channels: int

    @property
    def frames(self) -> int:
        return int(self.samples.shape[0])

    @property
    def duration_s(self) -> float:
        return self.frames / self.sample_rate_hz


def encode_to_transport(data: bytes) -> str:
    """Encode arbitrary bytes as ASCII base64 text."""
    return base64.b64encode(data).decode("ascii")


def decode_from_transport(text: str) -> bytes:
    """
    Decode base64 text produced by encode_to_transport().

    Raises:
        DecodeError if the text is not valid base64.
    """
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"invalid transport encoding: {e}") from e


def decode_to_playable_buffer(
    data: bytes,
    *,
    context_sample_rate_hz: int | None = None,
    output_sample_rate_hz: int = OUTPUT_SAMPLE_RATE_HZ,
    channels: int = OUTPUT_CHANNELS,
) -> PlayableBuffer:
    """
    Interpret `data` as interleaved PCM16 LE at `output_sample_rate_hz`.

    When `context_sample_rate_hz` is given and differs, the samples are
    resampled to it so the buffer can be played directly on that context.

    Raises:
        DecodeError on empty input or a byte count that is not a whole
        number of frames.
    """
    if channels <= 0:
        raise DecodeError("channels must be > 0")
    if not data:
        raise DecodeError("empty audio payload")

    bytes_per_frame = AUDIO_SAMPLE_WIDTH_BYTES * channels
    if len(data) % bytes_per_frame != 0:
        raise DecodeError(
            f"payload of {len(data)} bytes is not a whole number of "
            f"{bytes_per_frame}-byte frames"
        )

    samples = pcm16le_to_float32(data).reshape(-1, channels)
    rate = output_sample_rate_hz

    if context_sample_rate_hz is not None and context_sample_rate_hz != rate:
        samples = resample_float32(samples, rate, context_sample_rate_hz)
        rate = context_sample_rate_hz

    return PlayableBuffer(samples=samples, sample_rate_hz=rate, channels=channels)
