from __future__ import annotations

import pytest

import tally.runtime_logging as runtime_logging
from tally.config import Settings
from tally.session import CalculatorSession
from tally.storage import LocalStore


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def runtime_log(tmp_path, monkeypatch):
    log_dir = tmp_path / "logs"
    monkeypatch.setattr(runtime_logging, "LOG_DIR", log_dir)
    monkeypatch.setattr(runtime_logging, "RUNTIME_EVENTS_LOG_FILE", log_dir / "runtime_events.jsonl")
    return log_dir / "runtime_events.jsonl"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(tmp_path) -> LocalStore:
    return LocalStore(tmp_path / "store")


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        storage_root=tmp_path / "store",
        history_capacity=2,
        debounce_seconds=1.0,
        autosave_interval_seconds=30.0,
        gate_secret="1625",
    )


@pytest.fixture
def session(store, settings, clock) -> CalculatorSession:
    return CalculatorSession(store, settings, clock=clock)
