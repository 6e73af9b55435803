from __future__ import annotations
from pydantic import BaseModel
from typing import Any, Optional


class ViewerMessage(BaseModel):
    event: str
    data: Any = None


class HistoryPoint(BaseModel):
    ts: str
    temp: str
    led: int


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    mqtt: bool
    mongodb: bool  # store reachability; key kept for existing dashboard clients
    threshold: float
    lastTemp: Optional[float]
    ledState: int
