from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from cutline.circuit_breaker import CircuitState


class FakeLogger:
    """Capture structured logger events for assertions."""

    def __init__(self) -> None:
        self.events: list[str] = []
        self.calls: list[tuple[str, str, dict[str, object]]] = []

    def _record(self, level: str, event: str, **kwargs: object) -> None:
        self.events.append(event)
        self.calls.append((level, event, kwargs))

    def info(self, event: str, **kwargs: object) -> None:
        self._record("info", event, **kwargs)

    def warning(self, event: str, **kwargs: object) -> None:
        self._record("warning", event, **kwargs)

    def error(self, event: str, **kwargs: object) -> None:
        self._record("error", event, **kwargs)

    def exception(self, event: str, **kwargs: object) -> None:
        self._record("exception", event, **kwargs)


class FakeClock:
    """Manually advanced UTC clock for breaker timing."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = datetime(2020, 1, 1, tzinfo=UTC) if start is None else start

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now = self._now + timedelta(seconds=seconds)


class RecordingSleep:
    """Async sleep double that records delays and advances an optional clock."""

    def __init__(self, clock: FakeClock | None = None) -> None:
        self.delays: list[float] = []
        self._clock = clock

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self._clock is not None:
            self._clock.advance(delay)


@dataclass(slots=True)
class RecordingListener:
    events: list[tuple[str, object]] = field(default_factory=list)

    def on_state_change(self, name: str, old: CircuitState, new: CircuitState) -> None:
        self.events.append(("state", (name, old, new)))

    def on_call_rejected(self, name: str) -> None:
        self.events.append(("rejected", name))

    def on_call_succeeded(self, name: str) -> None:
        self.events.append(("succeeded", name))

    def on_call_failed(self, name: str, exc: Exception) -> None:
        self.events.append(("failed", (name, exc.__class__.__name__)))


@dataclass(slots=True)
class ExplodingListener:
    def on_state_change(self, name: str, old: CircuitState, new: CircuitState) -> None:
        raise RuntimeError("boom")

    def on_call_rejected(self, name: str) -> None:
        raise RuntimeError("boom")

    def on_call_succeeded(self, name: str) -> None:
        raise RuntimeError("boom")

    def on_call_failed(self, name: str, exc: Exception) -> None:
        raise RuntimeError("boom")
