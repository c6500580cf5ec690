"""Resilient async HTTP client: bounded retries behind a local circuit breaker."""

from cutline.circuit_breaker import (
    BreakerListener,
    BreakerSnapshot,
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerError,
    CircuitOpenError,
    CircuitState,
    LoggingBreakerListener,
)
from cutline.client import Cutline
from cutline.errors import AttemptError, AttemptErrorKind, describe_attempt_error
from cutline.executor import ResilientExecutor
from cutline.retry import RetryConfig, RetryPolicy, add_jitter
from cutline.settings import CutlineSettings

__all__ = [
    "AttemptError",
    "AttemptErrorKind",
    "BreakerListener",
    "BreakerSnapshot",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitOpenError",
    "CircuitState",
    "Cutline",
    "CutlineSettings",
    "LoggingBreakerListener",
    "ResilientExecutor",
    "RetryConfig",
    "RetryPolicy",
    "add_jitter",
    "describe_attempt_error",
]
