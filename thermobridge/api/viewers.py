from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Viewer:
    websocket: WebSocket
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])


class ViewerHub:
    """Connected dashboards. Frames are ``{"event": ..., "data": ...}``.

    Every send is bounded by ``send_timeout``; a viewer that fails or stalls
    is dropped so the control loop never waits on a slow socket.
    """

    def __init__(self, send_timeout: float = 2.0) -> None:
        self._viewers: dict[str, Viewer] = {}
        self._send_timeout = send_timeout

    def __len__(self) -> int:
        return len(self._viewers)

    def add(self, viewer: Viewer) -> None:
        self._viewers[viewer.id] = viewer
        logger.info("Viewer connected: %s (%d online)", viewer.id, len(self._viewers))

    def remove(self, viewer_id: str) -> None:
        if self._viewers.pop(viewer_id, None) is not None:
            logger.info("Viewer disconnected: %s (%d online)", viewer_id, len(self._viewers))

    async def broadcast(self, event: str, data: Any) -> None:
        viewers = list(self._viewers.values())
        if viewers:
            await asyncio.gather(*(self._deliver(v, event, data) for v in viewers))

    async def send(self, viewer: Viewer, event: str, data: Any) -> None:
        await self._deliver(viewer, event, data)

    async def _deliver(self, viewer: Viewer, event: str, data: Any) -> None:
        try:
            await asyncio.wait_for(
                viewer.websocket.send_json({"event": event, "data": data}),
                timeout=self._send_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Dropping viewer %s: send stalled for %.1fs", viewer.id, self._send_timeout
            )
            self.remove(viewer.id)
        except Exception as e:
            # dead socket; the receive loop will notice too
            logger.warning("Dropping viewer %s after send failure: %s", viewer.id, e)
            self.remove(viewer.id)
