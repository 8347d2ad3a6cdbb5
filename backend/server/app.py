"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Set up middleware and logging
- Initialize shared resources (actuator link, audio output)
- Register routes
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from actuator.serial_link import SerialActuatorLink
from audio.playback import AudioOutput, NullAudioOutput
from config import AppConfig
from constants import OUTPUT_CHANNELS, OUTPUT_SAMPLE_RATE_HZ
from observability import logger

from server.routes import register_routes


def create_app(config: AppConfig | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    This is the app factory pattern that allows:
    - Testing with different configurations
    - Environment-specific setup
    - ASGI server compatibility
    """
    config = config or AppConfig.load_from_env()

    logger.configure(json_lines=config.enable_json_logs, level=config.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await app.state.actuator.close()
        app.state.audio_output.close()

    app = FastAPI(title="Live Haptic Assistant API", lifespan=lifespan)

    app.state.config = config

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # tighten later
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Shared hardware, ONCE per process
    app.state.actuator = SerialActuatorLink(preferred_port=config.serial_port)
    app.state.audio_output = build_audio_output(config)

    # Routes
    register_routes(app)

    return app


def build_audio_output(config: AppConfig) -> AudioOutput:
    """Build the playback sink selected by AUDIO_OUTPUT (device | none)."""
    if config.audio_output == "none":
        return NullAudioOutput(sample_rate_hz=OUTPUT_SAMPLE_RATE_HZ)

    if config.audio_output != "device":
        raise RuntimeError(f"Unknown AUDIO_OUTPUT: {config.audio_output}")

    # Imported here so hosts without PortAudio can still run with AUDIO_OUTPUT=none
    from audio.device_output import SoundDeviceOutput  # pylint: disable=import-outside-toplevel

    device: str | int | None = config.audio_output_device
    if device is not None and device.isdigit():
        device = int(device)

    return SoundDeviceOutput(
        device=device,
        sample_rate_hz=OUTPUT_SAMPLE_RATE_HZ,
        channels=OUTPUT_CHANNELS,
    )
