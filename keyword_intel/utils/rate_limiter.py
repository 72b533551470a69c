"""Sliding-window admission control keyed by service name."""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Optional

from keyword_intel.errors import RateLimitExceeded

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimit:
    """Maximum number of live calls allowed per trailing window."""

    max_requests: int
    window_seconds: float

    def __post_init__(self) -> None:
        if self.max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")


@dataclass(frozen=True)
class Admission:
    allowed: bool
    retry_after: float = 0.0


class _Window:
    __slots__ = ("timestamps", "lock")

    def __init__(self) -> None:
        self.timestamps: deque[float] = deque()
        self.lock = threading.Lock()


class RateLimiter:
    """Non-blocking sliding-window limiter with one window per service.

    Unlike a sleeping limiter, ``admit`` never waits: it either records the
    call and allows it, or rejects it with the time until the oldest
    timestamp leaves the window.  Updates to a window are serialized by a
    per-service lock, and no lock is held across an ``await``.

    Usage::

        limiter = RateLimiter()
        decision = limiter.admit("dataforseo", 100, 86400)
        if not decision.allowed:
            print("wait", decision.retry_after)

        # or raise instead of returning a decision
        limiter.acquire("openai", RateLimit(15, 60))
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._clock = clock or time.monotonic
        self._windows: dict[str, _Window] = {}
        self._registry_lock = threading.Lock()

    def _window(self, service: str) -> _Window:
        with self._registry_lock:
            return self._windows.setdefault(service, _Window())

    @staticmethod
    def _purge(window: _Window, now: float, window_seconds: float) -> None:
        """Drop timestamps that have slid out of the trailing window."""
        cutoff = now - window_seconds
        while window.timestamps and window.timestamps[0] <= cutoff:
            window.timestamps.popleft()

    def admit(
        self, service: str, max_requests: int, window_seconds: float,
    ) -> Admission:
        """Record and allow a call for *service*, or reject it with a retry hint."""
        window = self._window(service)
        with window.lock:
            now = self._clock()
            self._purge(window, now, window_seconds)
            if len(window.timestamps) < max_requests:
                window.timestamps.append(now)
                return Admission(allowed=True)
            retry_after = window.timestamps[0] + window_seconds - now
        logger.warning(
            "RateLimiter(%s) rejected call: %d/%d in %.0fs window, retry in %.1fs",
            service, max_requests, max_requests, window_seconds, retry_after,
        )
        return Admission(allowed=False, retry_after=max(0.0, retry_after))

    def acquire(self, service: str, limit: RateLimit) -> None:
        """Admit a call or raise ``RateLimitExceeded``."""
        decision = self.admit(service, limit.max_requests, limit.window_seconds)
        if not decision.allowed:
            raise RateLimitExceeded(service, decision.retry_after)

    def usage(self, service: str, window_seconds: Optional[float] = None) -> int:
        """Number of admitted calls still inside the window for *service*."""
        with self._registry_lock:
            window = self._windows.get(service)
        if window is None:
            return 0
        with window.lock:
            if window_seconds is not None:
                self._purge(window, self._clock(), window_seconds)
            return len(window.timestamps)

    def reset(self, service: Optional[str] = None) -> None:
        """Forget recorded calls for one service, or for all of them.

        Windows stay registered; their timestamps are cleared under the
        window lock.
        """
        with self._registry_lock:
            if service is None:
                windows = list(self._windows.values())
            else:
                windows = [self._windows[service]] if service in self._windows else []
        for window in windows:
            with window.lock:
                window.timestamps.clear()
