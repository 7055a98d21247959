"""
In-process caching utilities for the upstream feed client.

This module provides:
- A TTL cache keyed by resource URL with lazy eviction and a periodic sweep
- Single-flight de-duplication of concurrent requests for the same key
- Per-label warning throttling to avoid log storms during sustained outages

All state lives on instances; the process-wide singletons are owned by the
EnvDataService created at application startup.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

_MISSING = object()


class TTLCache:
    """Key/value store whose entries expire `ttl` seconds after they were stored.

    Expired entries are evicted when looked up, and every `sweep_interval`
    seconds `set()` also drops every expired entry, so keys that are never
    requested again (one per caller coordinate, for example) do not pile up.
    """

    def __init__(self, clock: Clock = time.monotonic, sweep_interval: float = 60.0):
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, float]] = {}
        self.sweep_interval = sweep_interval
        self._next_sweep = clock() + sweep_interval
        self.stats = {"hits": 0, "misses": 0, "expired": 0, "sets": 0, "sweeps": 0}

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value, or `default` when absent or expired."""
        entry = self._entries.get(key, _MISSING)
        if entry is _MISSING:
            self.stats["misses"] += 1
            return default
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            self.stats["expired"] += 1
            self.stats["misses"] += 1
            return default
        self.stats["hits"] += 1
        return value

    def set(self, key: str, value: Any, ttl: float) -> None:
        now = self._clock()
        if now >= self._next_sweep:
            self._sweep(now)
        self._entries[key] = (value, now + ttl)
        self.stats["sets"] += 1

    def _sweep(self, now: float) -> None:
        expired = [key for key, (_, expires_at) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
        self.stats["expired"] += len(expired)
        self.stats["sweeps"] += 1
        self._next_sweep = now + self.sweep_interval
        if expired:
            logger.debug(f"🧹 CACHE SWEEP: dropped {len(expired)} expired entries")

    def __len__(self) -> int:
        return len(self._entries)


class InFlightTracker:
    """Share one pending call per key between concurrent callers.

    The first caller for a key starts the work as a task; callers arriving
    before it settles await the same task and observe the same result or
    exception. The marker is removed as soon as the task settles.
    """

    def __init__(self):
        self._pending: Dict[str, asyncio.Task] = {}
        self.shared = 0

    async def run(self, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        task = self._pending.get(key)
        if task is not None:
            self.shared += 1
            logger.debug(f"🔁 IN-FLIGHT HIT: {key}")
        else:
            task = asyncio.ensure_future(factory())
            self._pending[key] = task
            task.add_done_callback(lambda _t, k=key: self._forget(k, _t))
        # Shield so one cancelled waiter does not cancel the call for everyone else
        return await asyncio.shield(task)

    def _forget(self, key: str, task: asyncio.Task) -> None:
        if self._pending.get(key) is task:
            del self._pending[key]
        if not task.cancelled():
            # Mark the exception as retrieved; waiters re-raise it themselves
            task.exception()

    def __len__(self) -> int:
        return len(self._pending)


class WarningThrottle:
    """Emit at most one warning per label per `interval` seconds."""

    def __init__(self, interval: float = 60.0, clock: Clock = time.monotonic, log: Optional[logging.Logger] = None):
        self.interval = interval
        self._clock = clock
        self._log = log or logger
        self._last_warned: Dict[str, float] = {}
        self.suppressed = 0

    def warn(self, label: str, message: str) -> bool:
        """Log `message` unless `label` warned within the interval. Returns True if logged."""
        now = self._clock()
        last = self._last_warned.get(label)
        if last is not None and now - last < self.interval:
            self.suppressed += 1
            self._log.debug(f"(suppressed) {message}")
            return False
        self._last_warned[label] = now
        self._log.warning(message)
        return True
