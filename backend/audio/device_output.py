"""
Sound-card output with a sample-accurate playback timeline.

A single sounddevice.OutputStream runs for the life of the output. Its
callback mixes every scheduled voice overlapping the block being rendered;
the playback clock is the number of frames rendered so far divided by the
device rate.

Threading:
- The callback runs on PortAudio's thread.
- Voice bookkeeping is guarded by self._lock.
- on_ended callbacks are invoked AFTER the lock is released, so callers
  may take their own locks inside them.
"""

from __future__ import annotations

import threading

import numpy as np
import sounddevice as sd

from audio.codec import PlayableBuffer
from audio.playback import EndedCallback, ScheduledSource
from audio.resample import resample_float32
from constants import OUTPUT_CHANNELS, OUTPUT_SAMPLE_RATE_HZ
from observability.logger import log_event


class _Voice:
    """One buffer placed on the device timeline."""

    def __init__(
        self,
        owner: SoundDeviceOutput,
        samples: np.ndarray,
        start_frame: int,
        start_at: float,
        duration_s: float,
        on_ended: EndedCallback,
    ) -> None:
        self._owner = owner
        self.samples = samples
        self.start_frame = start_frame
        self.start_at = start_at
        self.duration_s = duration_s
        self.on_ended = on_ended
        self.ended = False

    @property
    def end_frame(self) -> int:
        return self.start_frame + self.samples.shape[0]

    def stop(self) -> None:
        self._owner.stop_voice(self)


class SoundDeviceOutput:
    """
    AudioOutput backed by the default (or named) PortAudio device.

    Opens at 24kHz when the device supports it, otherwise at the device's
    default rate; buffers at another rate are resampled on start().
    """

    def __init__(
        self,
        *,
        device: str | int | None = None,
        sample_rate_hz: int = OUTPUT_SAMPLE_RATE_HZ,
        channels: int = OUTPUT_CHANNELS,
    ) -> None:
        self.channels = channels
        self.sample_rate_hz = self._resolve_rate(device, sample_rate_hz, channels)

        self._lock = threading.Lock()
        self._voices: list[_Voice] = []
        self._frames_rendered: int = 0

        self._stream = sd.OutputStream(
            samplerate=self.sample_rate_hz,
            channels=channels,
            dtype="float32",
            device=device,
            callback=self._callback,
        )
        self._stream.start()

        log_event({
            "event_type": "AUDIO_OUTPUT_OPENED",
            "device": device,
            "sample_rate_hz": self.sample_rate_hz,
            "channels": channels,
        })

    # ------------------------------------------------------------------
    # AudioOutput
    # ------------------------------------------------------------------

    def current_time(self) -> float:
        with self._lock:
            return self._frames_rendered / self.sample_rate_hz

    def start(
        self,
        buffer: PlayableBuffer,
        *,
        start_at: float,
        on_ended: EndedCallback,
    ) -> ScheduledSource:
        samples = buffer.samples
        if buffer.sample_rate_hz != self.sample_rate_hz:
            samples = resample_float32(samples, buffer.sample_rate_hz, self.sample_rate_hz)
        samples = self._match_channels(samples)

        voice = _Voice(
            owner=self,
            samples=samples,
            start_frame=int(round(start_at * self.sample_rate_hz)),
            start_at=start_at,
            duration_s=buffer.duration_s,
            on_ended=on_ended,
        )
        with self._lock:
            self._voices.append(voice)
        return voice

    def stop_voice(self, voice: _Voice) -> None:
        with self._lock:
            if voice.ended:
                return
            voice.ended = True
            if voice in self._voices:
                self._voices.remove(voice)
        voice.on_ended(voice)

    def close(self) -> None:
        self._stream.stop()
        self._stream.close()

        with self._lock:
            voices, self._voices = self._voices, []
            for voice in voices:
                voice.ended = True
        for voice in voices:
            voice.on_ended(voice)

    # ------------------------------------------------------------------
    # PortAudio callback
    # ------------------------------------------------------------------

    def _callback(self, outdata: np.ndarray, frames: int, time_info, status) -> None:  # pylint: disable=unused-argument
        outdata.fill(0)
        finished: list[_Voice] = []

        with self._lock:
            block_start = self._frames_rendered
            block_end = block_start + frames

            for voice in self._voices:
                lo = max(voice.start_frame, block_start)
                hi = min(voice.end_frame, block_end)
                if hi > lo:
                    outdata[lo - block_start:hi - block_start] += (
                        voice.samples[lo - voice.start_frame:hi - voice.start_frame]
                    )
                if voice.end_frame <= block_end:
                    voice.ended = True
                    finished.append(voice)

            if finished:
                self._voices = [v for v in self._voices if not v.ended]
            self._frames_rendered = block_end

        np.clip(outdata, -1.0, 1.0, out=outdata)

        for voice in finished:
            voice.on_ended(voice)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _match_channels(self, samples: np.ndarray) -> np.ndarray:
        if samples.ndim == 1:
            samples = samples.reshape(-1, 1)
        if samples.shape[1] == self.channels:
            return samples
        if samples.shape[1] == 1:
            return np.repeat(samples, self.channels, axis=1)
        return samples.mean(axis=1, keepdims=True).repeat(self.channels, axis=1)

    @staticmethod
    def _resolve_rate(device: str | int | None, preferred: int, channels: int) -> int:
        try:
            sd.check_output_settings(device=device, samplerate=preferred, channels=channels)
            return preferred
        except (sd.PortAudioError, ValueError):
            info = sd.query_devices(device, "output")
            return int(info["default_samplerate"])
