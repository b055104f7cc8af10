from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from ..config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitConfig:
    window_s: float
    max_requests: int


@dataclass(frozen=True)
class RateLimitDecision:
    """
    Result of one check. reset_in_s is the time until the current window closes.
    """
    allowed: bool
    remaining: int
    reset_in_s: float

    @property
    def retry_after(self) -> int:
        return max(1, math.ceil(self.reset_in_s))


@dataclass
class _Window:
    count: int
    reset_at: float


def default_config() -> RateLimitConfig:
    return RateLimitConfig(window_s=settings.rate_limit_window_s, max_requests=settings.rate_limit_default_max)


def strict_config() -> RateLimitConfig:
    """
    Verification and submission: lower ceiling, same window.
    """
    return RateLimitConfig(window_s=settings.rate_limit_window_s, max_requests=settings.rate_limit_strict_max)


class RateLimiter:
    """
    Fixed-window request counter keyed by client identifier.

    - check() is a cheap synchronous call; it never waits.
    - One lock guards the table, so concurrent increments are exact.
    - Expired windows are swept every sweep_interval_s, and immediately whenever
      the table grows past max_entries, to keep memory bounded.
    """

    def __init__(
        self,
        *,
        max_entries: Optional[int] = None,
        sweep_interval_s: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_entries = max_entries or settings.rate_limit_max_entries
        self.sweep_interval_s = sweep_interval_s or settings.rate_limit_sweep_interval_s
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: Dict[str, _Window] = {}
        self._last_sweep = clock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)

    def check(self, identifier: str, config: Optional[RateLimitConfig] = None) -> RateLimitDecision:
        config = config or default_config()
        now = self._clock()

        with self._lock:
            if now - self._last_sweep >= self.sweep_interval_s or len(self._windows) > self.max_entries:
                self._sweep_locked(now)

            window = self._windows.get(identifier)

            if window is None or now >= window.reset_at:
                self._windows[identifier] = _Window(count=1, reset_at=now + config.window_s)
                return RateLimitDecision(
                    allowed=True,
                    remaining=config.max_requests - 1,
                    reset_in_s=config.window_s,
                )

            if window.count >= config.max_requests:
                return RateLimitDecision(allowed=False, remaining=0, reset_in_s=window.reset_at - now)

            window.count += 1
            return RateLimitDecision(
                allowed=True,
                remaining=config.max_requests - window.count,
                reset_in_s=window.reset_at - now,
            )

    def sweep(self) -> int:
        with self._lock:
            return self._sweep_locked(self._clock())

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()
            self._last_sweep = self._clock()

    def _sweep_locked(self, now: float) -> int:
        expired = [key for key, w in self._windows.items() if now >= w.reset_at]
        for key in expired:
            del self._windows[key]
        self._last_sweep = now
        if expired:
            logger.debug("rate limiter swept %s expired windows (%s live)", len(expired), len(self._windows))
        return len(expired)


# Process-wide table used by the API layer.
limiter = RateLimiter()
