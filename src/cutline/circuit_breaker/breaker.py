"""Core circuit breaker implementation."""

import threading
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any

from cutline.circuit_breaker.metrics import BreakerListener
from cutline.circuit_breaker.state import BreakerSnapshot, CircuitState

# Every edge the breaker may take. Anything else is a programming error.
_TRANSITIONS: frozenset[tuple[CircuitState, CircuitState]] = frozenset(
    {
        (CircuitState.CLOSED, CircuitState.OPEN),
        (CircuitState.OPEN, CircuitState.HALF_OPEN),
        (CircuitState.HALF_OPEN, CircuitState.CLOSED),
        (CircuitState.HALF_OPEN, CircuitState.OPEN),
    }
)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class CircuitBreakerConfig:
    """Circuit breaker configuration values.

    Attributes:
        failure_threshold: Consecutive failures required before opening.
        recovery_timeout: Seconds to wait while ``OPEN`` before allowing a probe.
        monitoring_period: Seconds of a monitoring window. Carried for callers
            and exporters; transitions do not read it.
        expected_errors: Status codes considered breaker-relevant. Carried for
            callers and exporters; transitions do not read it.
    """

    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    monitoring_period: float = 60.0
    expected_errors: frozenset[int] = field(
        default_factory=lambda: frozenset({500, 502, 503, 504})
    )

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if self.recovery_timeout <= 0:
            raise ValueError("recovery_timeout must be > 0")
        if self.monitoring_period < 0:
            raise ValueError("monitoring_period must be >= 0")
        # Accept any iterable of codes from callers, store it frozen.
        object.__setattr__(self, "expected_errors", frozenset(self.expected_errors))


def merge_circuit_breaker_config(
    overrides: CircuitBreakerConfig | Mapping[str, Any] | None = None,
) -> CircuitBreakerConfig:
    """Merge a partial circuit breaker configuration over the defaults."""
    if overrides is None:
        return CircuitBreakerConfig()
    if isinstance(overrides, CircuitBreakerConfig):
        return overrides
    return replace(CircuitBreakerConfig(), **dict(overrides))


class CircuitBreaker:
    """Local, purely reactive breaker tracking the health of one remote target.

    There is no background timer. ``OPEN → HALF_OPEN`` is recomputed lazily at
    the start of every state-observing call, so recovery becomes visible only
    the next time the breaker is consulted.

    All reads and mutations run under a re-entrant lock, so the observable
    transition sequence is the same on free-threaded interpreters.
    """

    def __init__(
        self,
        name: str = "default",
        *,
        config: CircuitBreakerConfig | None = None,
        listeners: Sequence[BreakerListener] | None = None,
    ) -> None:
        """Build a closed circuit breaker.

        Args:
            name: Breaker name used in errors, snapshots and listener events.
            config: Breaker behavior configuration. Defaults to
                ``CircuitBreakerConfig()``.
            listeners: Optional listener hooks for breaker events.
        """
        self.name = name
        self.config = CircuitBreakerConfig() if config is None else config
        self._listeners = tuple(listeners) if listeners is not None else ()
        self._lock = threading.RLock()
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_at: datetime | None = None
        self._last_state_change_at: datetime | None = _utcnow()

    @property
    def listeners(self) -> tuple[BreakerListener, ...]:
        return self._listeners

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failure_count

    @property
    def last_failure_at(self) -> datetime | None:
        with self._lock:
            return self._last_failure_at

    @property
    def last_state_change_at(self) -> datetime | None:
        with self._lock:
            return self._last_state_change_at

    def can_execute(self) -> bool:
        """Return whether a new attempt may be issued."""
        with self._lock:
            self._update_state()
            return self._state != CircuitState.OPEN

    def is_open(self) -> bool:
        """Return whether the breaker currently rejects attempts."""
        with self._lock:
            self._update_state()
            return self._state == CircuitState.OPEN

    def get_state(self) -> CircuitState:
        """Return the current state after the lazy recovery check."""
        with self._lock:
            self._update_state()
            return self._state

    def on_success(self) -> None:
        """Record a successful attempt, closing a half-open breaker."""
        with self._lock:
            self._failure_count = 0
            if self._state == CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.CLOSED)

    def on_failure(self) -> None:
        """Record a failed attempt, opening the breaker at the threshold.

        The failure count is not cleared on entering ``HALF_OPEN``, so a single
        failed probe reopens the breaker immediately.
        """
        with self._lock:
            self._failure_count += 1
            self._last_failure_at = _utcnow()
            if (
                self._failure_count >= self.config.failure_threshold
                and self._state != CircuitState.OPEN
            ):
                self._transition_to(CircuitState.OPEN)

    def reset(self) -> None:
        """Force the breaker back to a healthy ``CLOSED`` state."""
        with self._lock:
            old = self._state
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._last_failure_at = None
            self._last_state_change_at = None
        if old != CircuitState.CLOSED:
            self._emit_state_change(old, CircuitState.CLOSED)

    def retry_after(self) -> float:
        """Return seconds until an open breaker allows a probe, else ``0.0``."""
        with self._lock:
            self._update_state()
            if self._state != CircuitState.OPEN or self._last_state_change_at is None:
                return 0.0
            elapsed = (_utcnow() - self._last_state_change_at).total_seconds()
            return max(self.config.recovery_timeout - elapsed, 0.0)

    def snapshot(self) -> BreakerSnapshot:
        """Return a point-in-time view of the breaker internals."""
        with self._lock:
            self._update_state()
            return BreakerSnapshot(
                name=self.name,
                state=self._state,
                failure_count=self._failure_count,
                last_failure_at=self._last_failure_at,
                last_state_change_at=self._last_state_change_at,
            )

    def _update_state(self) -> None:
        if self._state != CircuitState.OPEN or self._last_state_change_at is None:
            return
        elapsed = (_utcnow() - self._last_state_change_at).total_seconds()
        if elapsed >= self.config.recovery_timeout:
            self._transition_to(CircuitState.HALF_OPEN)

    def _transition_to(self, new: CircuitState) -> None:
        old = self._state
        if (old, new) not in _TRANSITIONS:
            raise RuntimeError(f"invalid circuit transition {old} -> {new}")
        self._state = new
        self._last_state_change_at = _utcnow()
        self._emit_state_change(old, new)

    def _emit_state_change(self, old: CircuitState, new: CircuitState) -> None:
        for listener in self._listeners:
            try:
                listener.on_state_change(self.name, old, new)
            except Exception:
                continue
