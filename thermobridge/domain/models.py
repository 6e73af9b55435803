from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class Reading:
    ts_utc: datetime
    temp: Optional[float]
    led: int


@dataclass
class ControlState:
    threshold: float = 30.0
    last_led: int = 0
    last_temperature: Optional[float] = None


@dataclass(frozen=True)
class ControlSnapshot:
    threshold: float
    last_led: int
    last_temperature: Optional[float]


@dataclass(frozen=True)
class LedTransition:
    led: int
    command: str  # "ON" | "OFF"
