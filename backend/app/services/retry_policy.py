"""
services/retry_policy.py

Bounded exponential backoff shared by every registry call site.

    policy = RetryPolicy(max_attempts=3, base_delay=1.0, multiplier=2.0)
    payload = policy.call(lambda: client.post(...), retry_on=(TransientFetchError,))

Delays are base_delay * multiplier ** (attempt - 1), capped at max_delay, plus
up to `jitter` seconds of random spread. `sleep` is injectable for tests.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Callable, Tuple, Type, TypeVar

from app.core.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0
    jitter: float = 0.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0 or self.multiplier < 1 or self.max_delay < 0 or self.jitter < 0:
            raise ValueError("delays must be non-negative and multiplier >= 1")

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_attempts=settings.JUDICIAL_RETRY_MAX_ATTEMPTS,
            base_delay=settings.JUDICIAL_RETRY_BASE_DELAY_SECONDS,
            multiplier=settings.JUDICIAL_RETRY_BACKOFF_MULTIPLIER,
            max_delay=settings.JUDICIAL_RETRY_MAX_DELAY_SECONDS,
            jitter=settings.JUDICIAL_RETRY_JITTER_SECONDS,
        )

    def delay_for(self, attempt: int) -> float:
        """Delay after the given failed attempt (1-based), before jitter."""
        return min(self.max_delay, self.base_delay * (self.multiplier ** (attempt - 1)))

    def call(
        self,
        fn: Callable[[], T],
        retry_on: Tuple[Type[BaseException], ...] = (Exception,),
        label: str = "call",
    ) -> T:
        for attempt in range(1, self.max_attempts + 1):
            try:
                return fn()
            except retry_on as exc:
                if attempt >= self.max_attempts:
                    logger.warning("%s failed after %d attempts: %s", label, attempt, exc)
                    raise
                sleep_s = self.delay_for(attempt)
                if self.jitter:
                    sleep_s += random.uniform(0, self.jitter)
                logger.warning(
                    "%s failed (attempt %d/%d), retrying in %.1fs: %s",
                    label, attempt, self.max_attempts, sleep_s, exc,
                )
                self.sleep(sleep_s)
        raise AssertionError("unreachable")  # pragma: no cover
