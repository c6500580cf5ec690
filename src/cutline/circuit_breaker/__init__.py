"""Local, reactive circuit breaker.

This package implements the circuit breaker pattern from *Release It!*.

Key behavior notes:
  - State lives on the ``CircuitBreaker`` instance only. Nothing is persisted
    and nothing is shared across processes.
  - ``OPEN → HALF_OPEN`` is recomputed lazily whenever the breaker is observed;
    there is no background timer.
  - The failure count is cleared only by a success or a reset, so a single
    failed half-open probe reopens the circuit.
"""

from cutline.circuit_breaker.breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    merge_circuit_breaker_config,
)
from cutline.circuit_breaker.exceptions import (
    CircuitBreakerError,
    CircuitOpenError,
)
from cutline.circuit_breaker.metrics import BreakerListener, LoggingBreakerListener
from cutline.circuit_breaker.state import BreakerSnapshot, CircuitState

__all__ = [
    "BreakerListener",
    "BreakerSnapshot",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitOpenError",
    "CircuitState",
    "LoggingBreakerListener",
    "merge_circuit_breaker_config",
]
