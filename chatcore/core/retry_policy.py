"""Retry Policy — per-call retry state and backoff computation.

Invariants:
    - RetryState lives for one send_message / execute_tool_call invocation
    - Delay = retry_after * 1000 when the classifier supplied one
    - Otherwise min(base * 2^(attempt-1), cap), scaled by (1 ± jitter)
    - should_retry() is False for non-retryable errors and when attempts are exhausted

Design Decisions:
    - rng injectable: tests pin jitter without patching the random module
"""

import random
from dataclasses import dataclass
from typing import Callable

from chatcore.core.errors import ClassifiedError


@dataclass(frozen=True)
class BackoffPolicy:
    max_attempts: int
    base_delay_ms: int
    max_delay_ms: int
    jitter: float  # 0.25 = ±25%

    def delay_ms(
        self, attempt: int, retry_after_seconds: int | None = None,
        rng: Callable[[float, float], float] = random.uniform,
    ) -> int:
        """Delay before the attempt following `attempt` (1-based)."""
        if retry_after_seconds is not None:
            return retry_after_seconds * 1000
        exponential = min(
            self.base_delay_ms * (2 ** (attempt - 1)), self.max_delay_ms,
        )
        return int(exponential * rng(1 - self.jitter, 1 + self.jitter))  # nosec B311


@dataclass
class RetryState:
    max_attempts: int
    attempt: int = 0
    last_error: ClassifiedError | None = None

    def begin_attempt(self) -> int:
        self.attempt += 1
        return self.attempt

    def record(self, error: ClassifiedError) -> None:
        self.last_error = error

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.max_attempts

    def should_retry(self) -> bool:
        return (
            self.last_error is not None
            and self.last_error.retryable
            and not self.exhausted
        )
