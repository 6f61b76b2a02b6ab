"""Retry Policy tests — backoff math and per-call retry state.

Tests cover:
    - Exponential growth, cap, jitter bounds (rng pinned)
    - retry_after overrides the computed delay
    - RetryState: exhaustion and non-retryable short-circuit
"""

from chatcore.core.domain_types import ErrorKind
from chatcore.core.errors import ClassifiedError
from chatcore.core.retry_policy import BackoffPolicy, RetryState

POLICY = BackoffPolicy(max_attempts=3, base_delay_ms=1000, max_delay_ms=30_000, jitter=0.25)


def _mid(low, high):
    return 1.0


def test_exponential_growth_and_cap():
    assert [POLICY.delay_ms(n, rng=_mid) for n in (1, 2, 3)] == [1000, 2000, 4000]
    assert POLICY.delay_ms(10, rng=_mid) == 30_000


def test_jitter_bounds():
    assert POLICY.delay_ms(1, rng=lambda low, high: low) == 750
    assert POLICY.delay_ms(1, rng=lambda low, high: high) == 1250


def test_default_rng_stays_within_bounds():
    for _ in range(50):
        assert 750 <= POLICY.delay_ms(1) <= 1250


def test_retry_after_wins():
    assert POLICY.delay_ms(1, retry_after_seconds=2, rng=_mid) == 2000
    assert POLICY.delay_ms(3, retry_after_seconds=0, rng=_mid) == 0


def test_retry_state_exhausts():
    state = RetryState(max_attempts=3)
    retryable = ClassifiedError.of(ErrorKind.SERVER_ERROR, "500")
    attempts = []
    while True:
        attempts.append(state.begin_attempt())
        state.record(retryable)
        if not state.should_retry():
            break
    assert attempts == [1, 2, 3]
    assert state.exhausted


def test_non_retryable_stops_immediately():
    state = RetryState(max_attempts=5)
    state.begin_attempt()
    state.record(ClassifiedError.of(ErrorKind.INVALID_API_KEY, "401"))
    assert not state.should_retry()
    assert not state.exhausted


def test_no_error_means_no_retry():
    state = RetryState(max_attempts=2)
    state.begin_attempt()
    assert not state.should_retry()
