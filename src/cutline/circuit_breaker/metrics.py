"""Observability hooks for circuit breakers."""

from typing import Protocol

from cutline.circuit_breaker.state import CircuitState
from cutline.logging import (
    StdlibLogger,
    StructuredLogger,
    log_info,
    log_warning,
)


class BreakerListener(Protocol):
    """Listener protocol for circuit breaker events.

    Notes:
        ``on_state_change(OPEN → HALF_OPEN)`` is emitted lazily, the first time
        the breaker is observed after its recovery timeout has elapsed.
    """

    def on_state_change(self, name: str, old: CircuitState, new: CircuitState) -> None:
        """Handle circuit state transitions."""

    def on_call_rejected(self, name: str) -> None:
        """Handle an attempt rejected while the circuit is open."""

    def on_call_succeeded(self, name: str) -> None:
        """Handle a successful protected attempt."""

    def on_call_failed(self, name: str, exc: Exception) -> None:
        """Handle a failed protected attempt."""


class LoggingBreakerListener:
    """Breaker listener that logs state changes and successful attempts."""

    def __init__(self, logger: StructuredLogger | StdlibLogger) -> None:
        self._logger = logger

    def on_state_change(self, name: str, old: CircuitState, new: CircuitState) -> None:
        log_warning(
            self._logger,
            "circuit_breaker.state_changed",
            breaker=name,
            old_state=str(old),
            new_state=str(new),
        )

    def on_call_rejected(self, name: str) -> None:
        """Rejections are logged by the executor with their retry hint."""

    def on_call_succeeded(self, name: str) -> None:
        log_info(self._logger, "circuit_breaker.call_succeeded", breaker=name)

    def on_call_failed(self, name: str, exc: Exception) -> None:
        """Failed attempts are logged by the executor's retry events."""
