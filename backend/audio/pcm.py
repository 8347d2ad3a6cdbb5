"""PCM conversion utilities."""
import numpy as np

from constants import PCM16_FULL_SCALE


def pcm16le_to_float32(pcm_bytes: bytes) -> np.ndarray:
    """
    Convert PCM16 little-endian bytes to float32 in [-1.0, 1.0).

    No resampling. No channel de-interleaving.

    Raises:
        ValueError on a truncated trailing sample.
    """
    if len(pcm_bytes) % 2 != 0:
        raise ValueError(f"PCM16 payload has odd length ({len(pcm_bytes)} bytes)")

    audio_i16 = np.frombuffer(pcm_bytes, dtype="<i2")  # little-endian int16
    return audio_i16.astype(np.float32) / PCM16_FULL_SCALE


def float32_to_pcm16le(samples: np.ndarray) -> bytes:
    """
    Convert float samples in [-1.0, 1.0] to PCM16 little-endian bytes.

    Values are scaled by 32768 and clipped to the int16 range.
    """
    scaled = np.asarray(samples, dtype=np.float32) * PCM16_FULL_SCALE
    return np.clip(scaled, -32768, 32767).astype("<i2").tobytes()
