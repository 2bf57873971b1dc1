"""Retry and circuit-breaker state for outbound model calls.

The policy is an explicitly constructed object handed to the model client, so
tests can inject a fake clock, a recording ``sleep`` and a seeded random
source instead of patching module globals.
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
import logging
import random
import time
from typing import Awaitable, Callable


logger = logging.getLogger(__name__)

CLOSED = "closed"
OPEN = "open"
HALF_OPEN = "half-open"


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay_sec: float = 1.0
    max_delay_sec: float = 10.0
    jitter: float = 0.5

    def backoff_delay(self, retry_number: int, rng: random.Random) -> float:
        """Delay before retry ``retry_number`` (1-based), capped and jittered."""
        raw = self.base_delay_sec * (2 ** max(0, retry_number - 1))
        capped = min(raw, self.max_delay_sec)
        if self.jitter <= 0:
            return capped
        spread = capped * self.jitter
        return max(0.0, min(self.max_delay_sec, capped + rng.uniform(-spread, spread)))


class CircuitBreaker:
    """Failure-ratio breaker over a rolling window of recent call outcomes."""

    def __init__(
        self,
        *,
        window_size: int = 10,
        failure_ratio: float = 0.5,
        min_calls: int = 5,
        cooldown_sec: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.window_size = max(1, int(window_size))
        self.failure_ratio = failure_ratio
        self.min_calls = max(1, min(int(min_calls), self.window_size))
        self.cooldown_sec = cooldown_sec
        self._clock = clock
        self._outcomes: deque[bool] = deque(maxlen=self.window_size)
        self._opened_at: float | None = None
        self._probe_in_flight = False
        self._probe_started_at = 0.0
        self.state = CLOSED

    def failure_rate(self) -> float:
        if not self._outcomes:
            return 0.0
        return sum(1 for ok in self._outcomes if not ok) / len(self._outcomes)

    def allow_request(self) -> bool:
        if self.state == CLOSED:
            return True

        if self.state == OPEN:
            elapsed = self._clock() - (self._opened_at or 0.0)
            if elapsed < self.cooldown_sec:
                return False
            self.state = HALF_OPEN
            self._probe_in_flight = False
            logger.info("circuit breaker half-open after %.1fs cool-down", elapsed)

        # half-open: 한 번에 하나의 프로브만 통과시킨다.
        now = self._clock()
        if self._probe_in_flight and now - self._probe_started_at < self.cooldown_sec:
            return False
        self._probe_in_flight = True
        self._probe_started_at = now
        return True

    def record_success(self) -> None:
        if self.state == HALF_OPEN:
            logger.info("circuit breaker closed after successful probe")
            self._reset()
            return
        self._outcomes.append(True)

    def record_failure(self) -> None:
        if self.state == HALF_OPEN:
            self._open()
            return
        if self.state == OPEN:
            return
        self._outcomes.append(False)
        if len(self._outcomes) >= self.min_calls and self.failure_rate() >= self.failure_ratio:
            self._open()

    def _open(self) -> None:
        self.state = OPEN
        self._opened_at = self._clock()
        self._probe_in_flight = False
        logger.warning(
            "circuit breaker opened (failure rate %.2f over %d calls)",
            self.failure_rate(),
            len(self._outcomes),
        )

    def _reset(self) -> None:
        self.state = CLOSED
        self._outcomes.clear()
        self._opened_at = None
        self._probe_in_flight = False

    def snapshot(self) -> dict[str, object]:
        return {
            "state": self.state,
            "failure_rate": round(self.failure_rate(), 3),
            "window": len(self._outcomes),
        }


class ResiliencePolicy:
    def __init__(
        self,
        *,
        retry: RetryPolicy | None = None,
        breaker: CircuitBreaker | None = None,
        timeout_sec: float = 30.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self.retry = retry or RetryPolicy()
        self.breaker = breaker or CircuitBreaker()
        self.timeout_sec = timeout_sec
        self._sleep = sleep
        self._rng = rng or random.Random()

    async def wait_before_retry(self, retry_number: int) -> float:
        delay = self.retry.backoff_delay(retry_number, self._rng)
        await self._sleep(delay)
        return delay
