"""Shared fixtures: in-memory sinks standing in for MQTT, viewers and the store."""

from typing import Any, List, Tuple
from unittest.mock import AsyncMock, MagicMock

import pytest

from thermobridge.domain.controller import ThresholdController
from thermobridge.storage.sqlite_repo import SQLiteRepository


class FakeActuator:
    actuator_id = "fake_led"

    def __init__(self) -> None:
        self.commands: List[str] = []

    async def set_state(self, on: bool, reason: str) -> None:
        self.commands.append("ON" if on else "OFF")


class FakeBroadcaster:
    def __init__(self) -> None:
        self.events: List[Tuple[str, Any]] = []
        self.direct: List[Tuple[Any, str, Any]] = []

    async def broadcast(self, event: str, data: Any) -> None:
        self.events.append((event, data))

    async def send(self, viewer: Any, event: str, data: Any) -> None:
        self.direct.append((viewer, event, data))


@pytest.fixture
def actuator() -> FakeActuator:
    return FakeActuator()


@pytest.fixture
def broadcaster() -> FakeBroadcaster:
    return FakeBroadcaster()


@pytest.fixture
def repo_mock() -> MagicMock:
    """Store double; insert_reading is awaited by the persistence task."""
    repo = MagicMock()
    repo.insert_reading = AsyncMock()
    repo.query_history = AsyncMock(return_value=[])
    repo.aggregate_since = AsyncMock(return_value=None)
    repo.ping = AsyncMock(return_value=True)
    return repo


@pytest.fixture
def controller(actuator, broadcaster, repo_mock) -> ThresholdController:
    return ThresholdController(actuator, broadcaster, repo_mock, threshold=30.0)


@pytest.fixture
def db_path(tmp_path) -> str:
    return str(tmp_path / "readings.db")


@pytest.fixture
async def sqlite_repo(db_path) -> SQLiteRepository:
    repo = SQLiteRepository(db_path)
    await repo.init()
    return repo
