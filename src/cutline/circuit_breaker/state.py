"""Circuit breaker state primitives."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class CircuitState(StrEnum):
    """Circuit breaker state values."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class BreakerSnapshot:
    """Point-in-time view of breaker internals useful for metrics/logging.

    Attributes:
        name: Breaker name.
        state: Breaker state after the lazy recovery check.
        failure_count: Failures seen since the last success or reset.
        last_failure_at: Timestamp of the last recorded failure, if any.
        last_state_change_at: Timestamp of the last transition, if any.
    """

    name: str
    state: CircuitState
    failure_count: int
    last_failure_at: datetime | None
    last_state_change_at: datetime | None
