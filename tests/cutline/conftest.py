from __future__ import annotations

import pytest

import cutline.circuit_breaker.breaker as breaker_mod
from tests.cutline.support.fakes import FakeClock, FakeLogger, RecordingSleep


@pytest.fixture
def fake_logger() -> FakeLogger:
    """Provide a fresh structured logger test double per test."""
    return FakeLogger()


@pytest.fixture
def fake_clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    """Drive every breaker timestamp from a manually advanced clock."""
    clock = FakeClock()
    monkeypatch.setattr(breaker_mod, "_utcnow", clock.now)
    return clock


@pytest.fixture
def recording_sleep(fake_clock: FakeClock) -> RecordingSleep:
    """Provide a backoff sleep that advances the fake clock instead of waiting."""
    return RecordingSleep(fake_clock)
