"""In-memory fixed-window counter table for the rate limiter.

State is process-local: several replicas behind a load balancer each enforce
the limit on their own, so the aggregate allowance scales with replica count.
A shared backend must keep the ``hit``/``sweep`` contract and make ``hit``
atomic per key.
"""

from __future__ import annotations

import asyncio
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

import structlog

logger = structlog.get_logger()

Clock = Callable[[], float]


@dataclass
class RateLimitEntry:
    key: str
    count: int
    window_reset_at: float

    def expired(self, now: float) -> bool:
        return now >= self.window_reset_at

    def seconds_remaining(self, now: float) -> float:
        return max(0.0, self.window_reset_at - now)


class InMemoryRateLimitStore:
    """Per-key request counters within fixed windows.

    ``hit`` and ``sweep`` are serialized by a lock so a sweep never races a
    request on the same key.
    """

    def __init__(self, window_seconds: int = 60, clock: Clock = time.time) -> None:
        self.window_seconds = window_seconds
        self._clock = clock
        self._entries: dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()
        self._sweep_task: asyncio.Task | None = None

    def __len__(self) -> int:
        return len(self._entries)

    def now(self) -> float:
        return self._clock()

    def get(self, key: str) -> RateLimitEntry | None:
        return self._entries.get(key)

    def hit(self, key: str) -> tuple[RateLimitEntry, bool]:
        """Count one request for ``key``.

        Returns the entry and whether this request opened a new window. A new
        window starts at count 1; otherwise the count is incremented.
        """
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.expired(now):
                entry = RateLimitEntry(key=key, count=1, window_reset_at=now + self.window_seconds)
                self._entries[key] = entry
                return entry, True
            entry.count += 1
            return entry, False

    def sweep(self) -> int:
        """Drop every entry whose window has elapsed. Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.expired(now)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("rate_limit_sweep", removed=len(expired), remaining=len(self._entries))
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    # ── background sweep ──

    @property
    def sweeper_running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    async def start_sweeper(self, interval_seconds: float) -> None:
        """Start the periodic sweep. Idempotent."""
        if self.sweeper_running:
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop(interval_seconds))
        logger.info("rate_limit_sweeper_started", interval_seconds=interval_seconds)

    async def stop_sweeper(self) -> None:
        """Cancel the sweep task and wait for it to finish."""
        task, self._sweep_task = self._sweep_task, None
        if task is None:
            return
        if not task.done():
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("rate_limit_sweeper_stopped")

    async def _sweep_loop(self, interval_seconds: float) -> None:
        """Runs until cancelled. Sweep errors are logged, never fatal."""
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                self.sweep()
            except Exception:
                logger.exception("rate_limit_sweep_error")
