"""
Bounded outbound chunk queue with drop accounting.

Requirements:
- Strict FIFO (audio and video share one queue, so per-stream order holds)
- Bounded by item count
- Explicit drop behavior: a full queue rejects the NEW chunk
- Drop reasons distinguishable (overflow vs inactive session)
- enqueue() is synchronous; the sender task awaits get()
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Deque

from audio.frames import OutboundChunk


class DropReason(str, Enum):
    """
    Reason an outbound chunk was dropped.
    """
    OVERFLOW = "overflow"
    INACTIVE = "inactive"


@dataclass
class DropCounters:
    """
    Drop counters for observability.
    """
    overflow: int = 0
    inactive: int = 0


class OutboundQueue:
    """
    Bounded FIFO queue for outbound chunks.

    Single consumer. Must be used from one event loop.
    """

    def __init__(self, *, max_items: int) -> None:
        if max_items <= 0:
            raise ValueError("max_items must be > 0")

        self._max_items: int = max_items
        self._items: Deque[OutboundChunk] = deque()
        self._ready = asyncio.Event()
        self.drops: DropCounters = DropCounters()

    # -------------------------
    # Core queue operations
    # -------------------------

    def enqueue(self, chunk: OutboundChunk) -> bool:
        """
        Enqueue a chunk without blocking.

        Returns:
            True if enqueued
            False if dropped (queue full)
        """
        if len(self._items) >= self._max_items:
            self.drops.overflow += 1
            return False

        self._items.append(chunk)
        self._ready.set()
        return True

    def record_drop(self, reason: DropReason) -> None:
        """Count a chunk rejected before reaching the queue."""
        if reason is DropReason.OVERFLOW:
            self.drops.overflow += 1
        else:
            self.drops.inactive += 1

    def dequeue(self) -> OutboundChunk | None:
        """
        Dequeue the oldest chunk.

        Returns None if queue is empty.
        """
        if not self._items:
            return None
        chunk = self._items.popleft()
        if not self._items:
            self._ready.clear()
        return chunk

    async def get(self) -> OutboundChunk:
        """Wait for and remove the oldest chunk."""
        while True:
            chunk = self.dequeue()
            if chunk is not None:
                return chunk
            await self._ready.wait()

    def clear(self) -> None:
        """
        Drop all queued chunks without counting them as drops.

        Used on session teardown.
        """
        self._items.clear()
        self._ready.clear()

    # -------------------------
    # Introspection helpers
    # -------------------------

    def __len__(self) -> int:
        return len(self._items)

    def is_empty(self) -> bool:
        """Check if the queue is empty."""
        return not self._items

    def total_drops(self) -> int:
        """
        Total chunks dropped for any reason.
        """
        return self.drops.overflow + self.drops.inactive

    def snapshot(self) -> dict[str, int]:
        """
        Lightweight snapshot for logging / metrics.
        """
        return {
            "items": len(self._items),
            "dropped_overflow": self.drops.overflow,
            "dropped_inactive": self.drops.inactive,
            "dropped_total": self.total_drops(),
        }
