"""
Gapless playback scheduling.

The scheduler keeps one monotonic "next start" offset on the output's
timeline. Each decoded buffer starts at max(next_start, now) and pushes
next_start forward by its duration, so buffers arriving faster than real
time play back-to-back and slower arrivals never overlap.

Every scheduled source is tracked until it ends. interrupt() force-stops
all of them and resets next_start to 0.

Threading:
    Output implementations may call on_ended from an audio thread, so the
    active set and next_start are guarded by a lock. The lock is reentrant
    because an output may retire sources (firing on_ended) while its clock
    is read inside schedule(). Sources are stopped outside the lock.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Protocol

from audio.codec import PlayableBuffer
from constants import OUTPUT_SAMPLE_RATE_HZ


class ScheduledSource(Protocol):
    """A buffer placed on an output timeline."""

    start_at: float
    duration_s: float

    def stop(self) -> None:
        """Stop immediately. Must be idempotent."""


EndedCallback = Callable[[ScheduledSource], None]


class AudioOutput(Protocol):
    """
    An output device with its own playback clock.

    current_time() is seconds on the output timeline. start() places a
    buffer at `start_at` (>= current_time()) and must invoke `on_ended`
    exactly once when the source finishes or is stopped.
    """

    sample_rate_hz: int

    def current_time(self) -> float:
        ...

    def start(
        self,
        buffer: PlayableBuffer,
        *,
        start_at: float,
        on_ended: EndedCallback,
    ) -> ScheduledSource:
        ...

    def close(self) -> None:
        ...


class PlaybackScheduler:
    """Schedules decoded buffers back-to-back on an AudioOutput."""

    def __init__(self, output: AudioOutput) -> None:
        self._output = output
        self._lock = threading.RLock()
        self._next_start: float = 0.0
        self._active: set[ScheduledSource] = set()

    @property
    def sample_rate_hz(self) -> int:
        return self._output.sample_rate_hz

    @property
    def next_start(self) -> float:
        with self._lock:
            return self._next_start

    def active_count(self) -> int:
        with self._lock:
            return len(self._active)

    def schedule(self, buffer: PlayableBuffer) -> ScheduledSource:
        """Place `buffer` right after everything already scheduled."""
        with self._lock:
            start_at = max(self._next_start, self._output.current_time())
            source = self._output.start(
                buffer,
                start_at=start_at,
                on_ended=self._on_ended,
            )
            self._next_start = start_at + buffer.duration_s
            self._active.add(source)
        return source

    def interrupt(self) -> int:
        """
        Stop and forget every scheduled source; reset the offset.

        Returns the number of sources stopped.
        """
        with self._lock:
            sources = list(self._active)
            self._active.clear()
            self._next_start = 0.0

        for source in sources:
            source.stop()
        return len(sources)

    def _on_ended(self, source: ScheduledSource) -> None:
        with self._lock:
            self._active.discard(source)


# ---------------------------------------------------------------------
# Headless output
# ---------------------------------------------------------------------


class _TimedSource:
    def __init__(self, start_at: float, duration_s: float, on_ended: EndedCallback) -> None:
        self.start_at = start_at
        self.duration_s = duration_s
        self._on_ended = on_ended
        self._done = False

    @property
    def end_at(self) -> float:
        return self.start_at + self.duration_s

    def finish(self) -> None:
        if self._done:
            return
        self._done = True
        self._on_ended(self)

    def stop(self) -> None:
        self.finish()


class NullAudioOutput:
    """
    Silent output driven by the monotonic clock.

    Used when no audio device is available (AUDIO_OUTPUT=none). Finished
    sources are retired lazily whenever the clock is read.
    """

    def __init__(
        self,
        *,
        sample_rate_hz: int = OUTPUT_SAMPLE_RATE_HZ,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.sample_rate_hz = sample_rate_hz
        self._clock = clock
        self._t0 = clock()
        self._lock = threading.Lock()
        self._sources: list[_TimedSource] = []

    def current_time(self) -> float:
        now = self._clock() - self._t0
        self._retire(now)
        return now

    def start(
        self,
        buffer: PlayableBuffer,
        *,
        start_at: float,
        on_ended: EndedCallback,
    ) -> ScheduledSource:
        source = _TimedSource(start_at, buffer.duration_s, on_ended)
        with self._lock:
            self._sources.append(source)
        return source

    def close(self) -> None:
        with self._lock:
            sources, self._sources = self._sources, []
        for source in sources:
            source.stop()

    def _retire(self, now: float) -> None:
        with self._lock:
            ended = [s for s in self._sources if s.end_at <= now]
            self._sources = [s for s in self._sources if s.end_at > now]
        for source in ended:
            source.finish()
