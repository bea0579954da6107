"""Request throttling to protect shared provider quotas."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional


@dataclass(frozen=True)
class ThrottleDecision:
    allow: bool
    reason: str
    wait_seconds: float = 0.0


class RateLimiter:
    """Single global token enforcing a minimum spacing between outbound calls.

    Callers queue on ``acquire`` instead of failing. ``max_requests_per_day``
    is a hard cap; once reached ``acquire`` raises ``RuntimeError``.
    """

    def __init__(
        self,
        min_seconds_between_requests: float = 15.0,
        max_requests_per_day: int = 0,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        self.min_seconds_between_requests = min_seconds_between_requests
        self.max_requests_per_day = max_requests_per_day
        self._clock = clock or time.time
        self._sleep = sleep or time.sleep
        self._lock = threading.Lock()
        self._last_request_time: Optional[float] = None
        self._day: Optional[int] = None
        self._daily_count = 0

    def allow(self, now: Optional[float] = None) -> ThrottleDecision:
        if now is None:
            now = self._clock()
        day = int(now // 86400)
        if self._day is None or day > self._day:
            self._day = day
            self._daily_count = 0

        if self.max_requests_per_day > 0 and self._daily_count >= self.max_requests_per_day:
            return ThrottleDecision(False, "Daily request cap reached")

        if self.min_seconds_between_requests > 0 and self._last_request_time is not None:
            elapsed = now - self._last_request_time
            if elapsed < self.min_seconds_between_requests:
                return ThrottleDecision(False, "Request rate too high", self.min_seconds_between_requests - elapsed)

        return ThrottleDecision(True, "Allowed")

    def acquire(self) -> float:
        """Block until a call may go out; return the seconds spent waiting."""
        waited = 0.0
        with self._lock:
            while True:
                decision = self.allow(self._clock())
                if decision.allow:
                    break
                if decision.wait_seconds <= 0:
                    raise RuntimeError(decision.reason)
                self._sleep(decision.wait_seconds)
                waited += decision.wait_seconds
            self._daily_count += 1
            self._last_request_time = self._clock()
        return waited

    @property
    def last_request_time(self) -> Optional[float]:
        return self._last_request_time
