from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from ..core.timeutil import now_utc, to_iso_z
from ..domain.controller import ThresholdController
from ..drivers.mqtt_bridge import MqttBridge
from ..services.dispatcher import EventDispatcher
from ..services.history import HistoryQueryError, HistoryService
from ..storage.sqlite_repo import SQLiteRepository
from .schemas import HealthResponse, HistoryPoint, ViewerMessage
from .viewers import Viewer, ViewerHub

logger = logging.getLogger(__name__)

router = APIRouter()
root_router = APIRouter()


# --- Dependency getters ---
# main.py points these at the real singletons via app.dependency_overrides.
def get_controller() -> ThresholdController:  # overridden in main
    raise RuntimeError("Controller dependency not configured")

def get_dispatcher() -> EventDispatcher:  # overridden in main
    raise RuntimeError("Dispatcher dependency not configured")

def get_hub() -> ViewerHub:  # overridden in main
    raise RuntimeError("Viewer hub dependency not configured")

def get_history() -> HistoryService:  # overridden in main
    raise RuntimeError("History dependency not configured")

def get_repo() -> SQLiteRepository:  # overridden in main
    raise RuntimeError("Repo dependency not configured")

def get_mqtt() -> Optional[MqttBridge]:  # overridden in main
    return None


@router.get("/history", response_model=list[HistoryPoint])
async def history(minutes: Optional[str] = None, svc: HistoryService = Depends(get_history)):
    try:
        return await svc.history(minutes)
    except HistoryQueryError as e:
        logger.error("History query failed: %s", e)
        return JSONResponse(
            status_code=500,
            content={"error": "Error querying history", "message": str(e)},
        )


@router.get("/stats")
async def stats(svc: HistoryService = Depends(get_history)):
    try:
        return await svc.stats()
    except HistoryQueryError as e:
        logger.error("Stats query failed: %s", e)
        return JSONResponse(status_code=500, content={"error": "Error computing stats"})


@root_router.get("/health", response_model=HealthResponse)
async def health(
    ctrl: ThresholdController = Depends(get_controller),
    repo: SQLiteRepository = Depends(get_repo),
    bridge: Optional[MqttBridge] = Depends(get_mqtt),
):
    snap = ctrl.snapshot()
    return HealthResponse(
        status="OK",
        timestamp=to_iso_z(now_utc()),
        mqtt=bool(bridge and bridge.is_connected),
        mongodb=await repo.ping(),
        threshold=snap.threshold,
        lastTemp=snap.last_temperature,
        ledState=snap.last_led,
    )


@root_router.websocket("/ws")
async def viewer_socket(
    websocket: WebSocket,
    ctrl: ThresholdController = Depends(get_controller),
    dispatcher: EventDispatcher = Depends(get_dispatcher),
    hub: ViewerHub = Depends(get_hub),
):
    await websocket.accept()
    viewer = Viewer(websocket=websocket)

    # Register and send the snapshot in one job so no transition slips between them
    async def join() -> None:
        hub.add(viewer)
        await ctrl.on_viewer_connect(viewer)

    await dispatcher.call("viewer_connect", join)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            text = message.get("text")
            if text is None:
                logger.warning("Non-text frame from viewer %s ignored", viewer.id)
                continue
            try:
                msg = ViewerMessage.model_validate_json(text)
            except ValidationError as e:
                logger.warning("Malformed frame from viewer %s: %s", viewer.id, e.errors()[:1])
                continue

            if msg.event == "set_threshold":
                await dispatcher.submit(
                    "set_threshold", ctrl.handle_threshold_change, msg.data, viewer.id
                )
            else:
                logger.debug("Ignoring event %r from viewer %s", msg.event, viewer.id)
    except WebSocketDisconnect:
        pass
    finally:
        hub.remove(viewer.id)
