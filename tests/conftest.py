"""Shared fixtures: a file-backed alert store with a controllable clock."""

from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path

import pytest

from alertrelay.core.config import reset_settings
from alertrelay.core.types import Actor, AlertInput, Severity
from alertrelay.storage.repository import AlertRepository


class FakeClock:
    """Callable epoch-seconds clock that tests can move forward."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, secs: float) -> None:
        self.now += secs


@pytest.fixture(autouse=True)
def _clean_settings() -> None:
    reset_settings()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def repository(tmp_path: Path, clock: FakeClock) -> AsyncIterator[AlertRepository]:
    db_path = tmp_path / "alerts.db"
    repo = AlertRepository(
        f"sqlite+aiosqlite:///{db_path}",
        clock=clock,
        db_path=db_path,
    )
    await repo.open()
    yield repo
    await repo.close()


def make_input(**kw: object) -> AlertInput:
    defaults: dict[str, object] = {
        "title": "Disk full",
        "source": "db-01",
        "severity": Severity.CRITICAL,
        "message": "Root volume at 98%",
        "timestamp": 1_700_000_000_000,
    }
    defaults.update(kw)
    return AlertInput(**defaults)  # type: ignore[arg-type]


def make_actor(**kw: object) -> Actor:
    defaults: dict[str, object] = {
        "id": 42,
        "username": "alice",
        "first_name": "Alice",
        "last_name": "Smith",
    }
    defaults.update(kw)
    return Actor(**defaults)  # type: ignore[arg-type]
