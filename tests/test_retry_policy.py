import random
from datetime import UTC, datetime, timedelta

import pytest

from outbox.v1.jobs.retry import OutcomeKind, RetryAction, RetryPolicy


@pytest.fixture
def policy() -> RetryPolicy:
    return RetryPolicy(base_delay_s=300, max_delay_s=3600)


def test_delay_doubles_per_attempt(policy):
    assert policy.delay_for(1) == 300
    assert policy.delay_for(2) == 600
    assert policy.delay_for(3) == 1200
    assert policy.delay_for(4) == 2400


def test_delay_is_monotonic_and_capped(policy):
    delays = [policy.delay_for(n) for n in range(1, 40)]

    assert delays == sorted(delays)
    assert max(delays) == 3600
    assert policy.delay_for(10_000) == 3600


def test_jitter_stays_within_ratio_and_cap():
    policy = RetryPolicy(
        base_delay_s=300, max_delay_s=3600, jitter_ratio=0.2, rng=random.Random(7)
    )

    for attempts in range(1, 12):
        nominal = min(3600, 300 * 2 ** (attempts - 1))
        delay = policy.delay_for(attempts)
        assert nominal * 0.8 <= delay <= min(3600, nominal * 1.2)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"base_delay_s": 0, "max_delay_s": 10},
        {"base_delay_s": 10, "max_delay_s": 5},
        {"base_delay_s": 10, "max_delay_s": 20, "jitter_ratio": 0.9},
    ],
)
def test_invalid_policy_rejected(kwargs):
    with pytest.raises(ValueError):
        RetryPolicy(**kwargs)


def test_success_completes(policy):
    decision = policy.decide(attempts=1, max_attempts=3, outcome=OutcomeKind.SUCCESS)
    assert decision.action == RetryAction.COMPLETE
    assert decision.scheduled_for is None


def test_retryable_with_attempts_left_schedules_backoff(policy):
    now = datetime(2026, 10, 12, 9, 0, tzinfo=UTC)

    decision = policy.decide(
        attempts=2, max_attempts=3, outcome=OutcomeKind.RETRYABLE, now=now
    )

    assert decision.action == RetryAction.RETRY
    assert decision.delay_seconds == 600
    assert decision.scheduled_for == now + timedelta(seconds=600)


def test_retryable_on_last_attempt_fails(policy):
    decision = policy.decide(attempts=3, max_attempts=3, outcome=OutcomeKind.RETRYABLE)
    assert decision.action == RetryAction.FAIL


def test_attempts_past_ceiling_fail(policy):
    """An operator retry can push attempts past the ceiling; a further failure is final."""
    decision = policy.decide(attempts=4, max_attempts=3, outcome=OutcomeKind.RETRYABLE)
    assert decision.action == RetryAction.FAIL


def test_fatal_fails_even_with_attempts_left(policy):
    decision = policy.decide(attempts=1, max_attempts=5, outcome=OutcomeKind.FATAL)
    assert decision.action == RetryAction.FAIL
