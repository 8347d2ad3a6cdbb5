"""
CONSTANTS
---------
Single source of truth for behavioural invariants.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Deployment-specific values (keys, ports, devices) live in config.py.
"""

from __future__ import annotations

from typing import Final

# =============================================================================
# Outbound audio (microphone -> remote service)
# =============================================================================

INPUT_SAMPLE_RATE_HZ: Final[int] = 16_000
INPUT_CHANNELS: Final[int] = 1
AUDIO_SAMPLE_WIDTH_BYTES: Final[int] = 2  # PCM16 (signed 16-bit)

# Clients capturing at another rate announce it with AUDIO_FORMAT.
CLIENT_CAPTURE_SAMPLE_RATE_HZ_DEFAULT: Final[int] = INPUT_SAMPLE_RATE_HZ

# =============================================================================
# Inbound audio (remote service -> speaker)
# =============================================================================

OUTPUT_SAMPLE_RATE_HZ: Final[int] = 24_000
OUTPUT_CHANNELS: Final[int] = 1

# Full-scale divisor for PCM16 -> float32 normalisation.
PCM16_FULL_SCALE: Final[float] = 32768.0

# =============================================================================
# Video frames
# =============================================================================

VIDEO_FRAME_MIME: Final[str] = "image/jpeg"

# =============================================================================
# Remote live session
# =============================================================================

LIVE_MODEL_DEFAULT: Final[str] = "gemini-2.5-flash-native-audio-preview-12-2025"
LIVE_VOICE_DEFAULT: Final[str] = "Zephyr"
LIVE_WS_HOST: Final[str] = "generativelanguage.googleapis.com"
LIVE_WS_PATH: Final[str] = (
    "/ws/google.ai.generativelanguage.v1beta.GenerativeService.BidiGenerateContent"
)
LIVE_SETUP_TIMEOUT_S: Final[float] = 10.0
LIVE_WS_MAX_MESSAGE_BYTES: Final[int] = 2**24

# Bounded outbound FIFO (audio chunks + video frames share one queue).
OUTBOUND_QUEUE_MAX_ITEMS: Final[int] = 256

# =============================================================================
# Haptic actuator (serial)
# =============================================================================

HAPTIC_CODE_PATTERN: Final[str] = r"HAPTIC_[0-5]"
SERIAL_BAUD_RATE_DEFAULT: Final[int] = 9600
SERIAL_LINE_TERMINATOR: Final[str] = "\n"
SERIAL_WRITE_TIMEOUT_S: Final[float] = 1.0

# Host-side sensory feedback (e.g. phone vibration) per haptic code.
LOCAL_PULSE_STRONG_MS: Final[int] = 80
LOCAL_PULSE_DEFAULT_MS: Final[int] = 30

# =============================================================================
# Host log history
# =============================================================================

LOG_HISTORY_MAX_ENTRIES: Final[int] = 50
