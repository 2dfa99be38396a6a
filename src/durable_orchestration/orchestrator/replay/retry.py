from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta


@dataclass(frozen=True, slots=True)
class RetryOptions:
    """Bounded retry policy for activities and sub-orchestrations.

    Attempt ``n`` (1-based) that fails is followed by a durable timer of
    ``first_retry_interval * backoff_coefficient ** (n - 1)``, capped by
    ``max_retry_interval``. No retry is scheduled once ``max_number_of_attempts``
    is reached or once ``retry_timeout`` has elapsed since the first attempt.
    """

    first_retry_interval: timedelta
    max_number_of_attempts: int
    backoff_coefficient: float = 1.0
    max_retry_interval: timedelta | None = None
    retry_timeout: timedelta | None = None

    def __post_init__(self) -> None:
        if self.first_retry_interval <= timedelta(0):
            raise ValueError("first_retry_interval must be greater than zero")
        if self.max_number_of_attempts < 1:
            raise ValueError("max_number_of_attempts must be at least 1")
        if self.backoff_coefficient < 1.0:
            raise ValueError("backoff_coefficient must be >= 1.0")
        if self.max_retry_interval is not None and self.max_retry_interval < self.first_retry_interval:
            raise ValueError("max_retry_interval must not be smaller than first_retry_interval")

    def next_delay(self, *, attempt: int, elapsed: timedelta) -> timedelta | None:
        """Delay before the attempt after ``attempt``, or None when retries are exhausted."""

        if attempt >= self.max_number_of_attempts:
            return None
        if self.retry_timeout is not None and elapsed >= self.retry_timeout:
            return None

        delay = self.first_retry_interval * (self.backoff_coefficient ** (attempt - 1))
        if self.max_retry_interval is not None and delay > self.max_retry_interval:
            delay = self.max_retry_interval
        return delay

    def to_json(self) -> dict[str, object]:
        out: dict[str, object] = {
            "firstRetryIntervalInMilliseconds": _ms(self.first_retry_interval),
            "maxNumberOfAttempts": self.max_number_of_attempts,
            "backoffCoefficient": self.backoff_coefficient,
        }
        if self.max_retry_interval is not None:
            out["maxRetryIntervalInMilliseconds"] = _ms(self.max_retry_interval)
        if self.retry_timeout is not None:
            out["retryTimeoutInMilliseconds"] = _ms(self.retry_timeout)
        return out


def _ms(value: timedelta) -> int:
    return int(value.total_seconds() * 1000)
