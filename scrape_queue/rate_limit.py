"""Utilities for pacing sequential calls to rate-limited providers."""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

Clock = Callable[[], float]
Sleeper = Callable[[float], None]


class Pacer(Protocol):
    """Anything that can be told a provider call has just completed."""

    def wait(self) -> None:  # pragma: no cover - runtime protocol
        """Block until the next call is allowed."""


@dataclass
class DelayPolicy:
    """Fixed pause applied after every provider call."""

    delay_seconds: float = 0.0


class FixedDelay:
    """Sleep for a fixed interval after each call."""

    def __init__(self, policy: Optional[DelayPolicy] = None, *, sleep: Sleeper = time.sleep) -> None:
        self._policy = policy or DelayPolicy()
        self._sleep = sleep

    @property
    def delay_seconds(self) -> float:
        return self._policy.delay_seconds

    def wait(self) -> None:
        if self._policy.delay_seconds > 0:
            self._sleep(self._policy.delay_seconds)


class RateLimiter:
    """Token bucket style rate limiter enforcing minimum interval between calls."""

    def __init__(
        self,
        calls_per_minute: Optional[float],
        *,
        clock: Clock = time.monotonic,
        sleep: Sleeper = time.sleep,
    ) -> None:
        self._interval = 60.0 / float(calls_per_minute) if calls_per_minute else 0.0
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._next_available = 0.0

    def acquire(self) -> None:
        if self._interval <= 0:
            return
        with self._lock:
            now = self._clock()
            if now < self._next_available:
                self._sleep(self._next_available - now)
                now = self._clock()
            self._next_available = now + self._interval

    def wait(self) -> None:
        """Pause after a completed call so the next one starts a full interval later."""

        if self._interval <= 0:
            return
        with self._lock:
            now = self._clock()
            resume_at = max(now + self._interval, self._next_available)
            self._sleep(resume_at - now)
            self._next_available = resume_at

