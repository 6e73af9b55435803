from __future__ import annotations
from datetime import datetime
from typing import Any, Optional, Protocol, runtime_checkable
from .models import Reading


@runtime_checkable
class Actuator(Protocol):
    actuator_id: str

    async def set_state(self, on: bool, reason: str) -> None:
        ...


@runtime_checkable
class Broadcaster(Protocol):
    async def broadcast(self, event: str, data: Any) -> None:
        ...

    async def send(self, viewer: Any, event: str, data: Any) -> None:
        ...


@runtime_checkable
class Repository(Protocol):
    async def init(self) -> None:
        ...

    async def insert_reading(self, reading: Reading) -> None:
        ...

    async def query_history(self, since: datetime, limit: int) -> list[Reading]:
        ...

    async def aggregate_since(self, since: datetime) -> Optional[dict]:
        ...

    async def ping(self) -> bool:
        ...
