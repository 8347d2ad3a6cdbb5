"""
Polyphase resampling helpers.

Used on two paths:
- capture: client PCM16 at its native rate -> 16kHz for the live service
- playback: 24kHz model audio -> the output device's rate
"""

from __future__ import annotations

from math import gcd

import numpy as np
from scipy import signal


def resample_float32(samples: np.ndarray, src_rate_hz: int, dst_rate_hz: int) -> np.ndarray:
    """
    Resample float samples along axis 0.

    Accepts 1-D (mono) or 2-D (frames, channels) arrays. Returns float32.
    """
    if src_rate_hz <= 0 or dst_rate_hz <= 0:
        raise ValueError("sample rates must be > 0")
    if src_rate_hz == dst_rate_hz or len(samples) == 0:
        return np.asarray(samples, dtype=np.float32)

    g = gcd(src_rate_hz, dst_rate_hz)
    up, down = dst_rate_hz // g, src_rate_hz // g
    out = signal.resample_poly(samples, up, down, axis=0)
    return out.astype(np.float32)


def resample_pcm16(pcm_bytes: bytes, src_rate_hz: int, dst_rate_hz: int) -> bytes:
    """Resample mono PCM16 little-endian bytes."""
    if not pcm_bytes or src_rate_hz == dst_rate_hz:
        return pcm_bytes

    samples = np.frombuffer(pcm_bytes, dtype="<i2")
    g = gcd(src_rate_hz, dst_rate_hz)
    out = signal.resample_poly(samples, dst_rate_hz // g, src_rate_hz // g)

    # Clip and convert back to int16
    return np.clip(out, -32768, 32767).astype("<i2").tobytes()
