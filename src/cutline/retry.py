from __future__ import annotations

import random
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt
from tenacity.retry import retry_base
from tenacity.wait import wait_base

from cutline.circuit_breaker.exceptions import CircuitBreakerError
from cutline.errors import ABORTED_CODE, AttemptErrorKind, describe_attempt_error

DEFAULT_RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})
DEFAULT_RETRYABLE_ERRORS = frozenset(
    {"ECONNRESET", "ENOTFOUND", "ETIMEDOUT", "ECONNREFUSED"}
)


@dataclass(frozen=True)
class RetryConfig:
    """Retry budget and exponential backoff settings.

    Attributes:
        max_retries: Retries after the first attempt; ``max_retries + 1``
            physical attempts at most.
        retry_delay: Delay in seconds before the first retry.
        backoff_multiplier: Growth factor applied per attempt.
        retryable_status_codes: Response statuses worth retrying.
        retryable_errors: Network error codes worth retrying.
        jitter_factor: Opt-in random spread added on top of each delay.
    """

    max_retries: int = 3
    retry_delay: float = 1.0
    backoff_multiplier: float = 2.0
    retryable_status_codes: frozenset[int] = field(
        default_factory=lambda: DEFAULT_RETRYABLE_STATUS_CODES
    )
    retryable_errors: frozenset[str] = field(
        default_factory=lambda: DEFAULT_RETRYABLE_ERRORS
    )
    jitter_factor: float = 0.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.retry_delay <= 0:
            raise ValueError("retry_delay must be > 0")
        if self.backoff_multiplier <= 0:
            raise ValueError("backoff_multiplier must be > 0")
        if self.jitter_factor < 0:
            raise ValueError("jitter_factor must be >= 0")
        object.__setattr__(
            self, "retryable_status_codes", frozenset(self.retryable_status_codes)
        )
        object.__setattr__(self, "retryable_errors", frozenset(self.retryable_errors))


def merge_retry_config(
    overrides: RetryConfig | Mapping[str, Any] | None = None,
) -> RetryConfig:
    """Merge a partial retry configuration over the defaults."""
    if overrides is None:
        return RetryConfig()
    if isinstance(overrides, RetryConfig):
        return overrides
    return replace(RetryConfig(), **dict(overrides))


def add_jitter(
    delay: float,
    jitter_factor: float = 0.1,
    *,
    rng: Callable[[], float] = random.random,
) -> float:
    """Return ``delay`` stretched by a random share of ``jitter_factor``."""
    return delay + delay * jitter_factor * rng()


class RetryPolicy:
    """Stateless retry decisions over a fixed ``RetryConfig``."""

    def __init__(self, config: RetryConfig | None = None) -> None:
        self.config = RetryConfig() if config is None else config

    def should_retry(self, error: BaseException, attempt: int) -> bool:
        """Return whether zero-based ``attempt`` should be retried after ``error``."""
        if attempt >= self.config.max_retries:
            return False
        # Breaker refusals are terminal whatever the breaker is called.
        if isinstance(error, CircuitBreakerError):
            return False

        described = describe_attempt_error(error)
        if described.code in self.config.retryable_errors:
            return True
        if described.code == ABORTED_CODE:
            return True
        if described.kind == AttemptErrorKind.RESPONSE:
            return described.status_code in self.config.retryable_status_codes
        return "timeout" in described.message

    def get_delay(self, attempt: int) -> float:
        """Return the pure exponential delay in seconds after ``attempt``."""
        return self.config.retry_delay * self.config.backoff_multiplier**attempt


class retry_if_policy_allows(retry_base):
    """Tenacity retry predicate delegating to a ``RetryPolicy``."""

    def __init__(self, policy: RetryPolicy) -> None:
        self.policy = policy

    def __call__(self, retry_state: RetryCallState) -> bool:
        outcome = retry_state.outcome
        if outcome is None or not outcome.failed:
            return False
        exc = outcome.exception()
        if not isinstance(exc, Exception):
            return False
        return self.policy.should_retry(exc, retry_state.attempt_number - 1)


class wait_policy_delay(wait_base):
    """Tenacity wait strategy delegating to ``RetryPolicy.get_delay``."""

    def __init__(
        self,
        policy: RetryPolicy,
        *,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self.policy = policy
        self.rng = rng

    def __call__(self, retry_state: RetryCallState) -> float:
        delay = self.policy.get_delay(retry_state.attempt_number - 1)
        jitter_factor = self.policy.config.jitter_factor
        if jitter_factor > 0:
            return add_jitter(delay, jitter_factor, rng=self.rng)
        return delay


def build_policy_retrying(
    *,
    policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[None]] | None = None,
    before_sleep: Callable[[RetryCallState], None] | None = None,
    rng: Callable[[], float] = random.random,
) -> AsyncRetrying:
    """Build an ``AsyncRetrying`` that follows ``policy`` and re-raises."""
    options: dict[str, Any] = {
        "retry": retry_if_policy_allows(policy),
        "wait": wait_policy_delay(policy, rng=rng),
        "stop": stop_after_attempt(policy.config.max_retries + 1),
        "reraise": True,
    }
    if sleep is not None:
        options["sleep"] = sleep
    if before_sleep is not None:
        options["before_sleep"] = before_sleep
    return AsyncRetrying(**options)
