"""
Retry and backoff policy for failed job attempts.
"""

import random
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum

from outbox.config.settings import Settings


class OutcomeKind(str, Enum):
    """How a single handler run ended."""

    SUCCESS = "success"
    RETRYABLE = "retryable"
    FATAL = "fatal"


class RetryAction(str, Enum):
    COMPLETE = "complete"
    RETRY = "retry"
    FAIL = "fail"


@dataclass(frozen=True)
class RetryDecision:
    """Next state for a job after a handler run."""

    action: RetryAction
    scheduled_for: datetime | None = None
    delay_seconds: float | None = None


class RetryPolicy:
    """
    Exponential backoff with a cap.

    The delay after the n-th failed attempt is `base * 2 ** (n - 1)`, bounded
    by `max_delay`. Optional jitter spreads retries of jobs that failed
    together, and never pushes a delay above the cap.
    """

    def __init__(
        self,
        base_delay_s: float,
        max_delay_s: float,
        jitter_ratio: float = 0.0,
        rng: random.Random | None = None,
    ):
        if base_delay_s <= 0:
            raise ValueError("base_delay_s must be positive")
        if max_delay_s < base_delay_s:
            raise ValueError("max_delay_s must be >= base_delay_s")
        if not 0 <= jitter_ratio <= 0.5:
            raise ValueError("jitter_ratio must be between 0 and 0.5")

        self.base_delay_s = base_delay_s
        self.max_delay_s = max_delay_s
        self.jitter_ratio = jitter_ratio
        self._rng = rng or random.Random()

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            base_delay_s=settings.job_backoff_base_s,
            max_delay_s=settings.job_max_backoff_s,
            jitter_ratio=settings.job_backoff_jitter,
        )

    def delay_for(self, attempts: int) -> float:
        """Seconds to wait after the attempt numbered `attempts` (1-based) failed."""
        exponent = max(0, attempts - 1)
        # Avoid float overflow on absurd attempt counts
        if exponent > 62:
            delay = self.max_delay_s
        else:
            delay = min(self.max_delay_s, self.base_delay_s * (2**exponent))

        if self.jitter_ratio:
            jitter = delay * self.jitter_ratio * (2 * self._rng.random() - 1)
            delay = min(self.max_delay_s, max(1.0, delay + jitter))

        return delay

    def decide(
        self,
        attempts: int,
        max_attempts: int,
        outcome: OutcomeKind,
        now: datetime | None = None,
    ) -> RetryDecision:
        """Map a handler outcome onto the next job state."""
        if outcome == OutcomeKind.SUCCESS:
            return RetryDecision(action=RetryAction.COMPLETE)

        if outcome == OutcomeKind.FATAL or attempts >= max_attempts:
            return RetryDecision(action=RetryAction.FAIL)

        delay = self.delay_for(attempts)
        now = now or datetime.now(UTC)
        return RetryDecision(
            action=RetryAction.RETRY,
            scheduled_for=now + timedelta(seconds=delay),
            delay_seconds=delay,
        )
