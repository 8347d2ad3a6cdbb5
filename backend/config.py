"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No session logic
- No protocol constants (see constants.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from constants import (
    LIVE_MODEL_DEFAULT,
    LIVE_VOICE_DEFAULT,
    SERIAL_BAUD_RATE_DEFAULT,
)


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    Passed downward to the gateway, engine and actuator wiring.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str
    log_level: str

    # ------------------------------------------------------------------
    # Live session
    # ------------------------------------------------------------------

    gemini_api_key: str | None
    live_model: str
    live_voice: str
    system_instruction_file: str | None

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    enable_json_logs: bool

    # ------------------------------------------------------------------
    # Haptic actuator
    # ------------------------------------------------------------------

    serial_port: str | None
    serial_baud_rate: int

    # ------------------------------------------------------------------
    # Playback
    # ------------------------------------------------------------------

    audio_output: str
    audio_output_device: str | None

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Raises:
            ValueError if a numeric variable is malformed.
        """
        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),

            gemini_api_key=os.environ.get("GEMINI_API_KEY"),
            live_model=os.environ.get("LIVE_MODEL", LIVE_MODEL_DEFAULT),
            live_voice=os.environ.get("LIVE_VOICE", LIVE_VOICE_DEFAULT),
            system_instruction_file=os.environ.get("SYSTEM_INSTRUCTION_FILE"),

            enable_json_logs=os.environ.get("ENABLE_JSON_LOGS", "1") == "1",

            serial_port=os.environ.get("SERIAL_PORT"),
            serial_baud_rate=int(
                os.environ.get("SERIAL_BAUD_RATE", str(SERIAL_BAUD_RATE_DEFAULT))
            ),

            audio_output=os.environ.get("AUDIO_OUTPUT", "device").lower(),
            audio_output_device=os.environ.get("AUDIO_OUTPUT_DEVICE"),
        )

    def load_system_instruction(self, default: str) -> str:
        """Return the instruction file's text if configured, else `default`."""
        if not self.system_instruction_file:
            return default
        return Path(self.system_instruction_file).read_text(encoding="utf-8")
