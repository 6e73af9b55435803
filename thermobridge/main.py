from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import settings
from .core.log import configure_logging

from .api.routes import router as api_router, root_router
import thermobridge.api.routes as routes_module

from .api.viewers import ViewerHub
from .domain.controller import ThresholdController
from .drivers.mqtt_bridge import MqttBridge, mask_credentials, parse_broker_url
from .services.dispatcher import EventDispatcher
from .services.history import HistoryService
from .storage.sqlite_repo import SQLiteRepository


logger = logging.getLogger(__name__)


# --- Singletons ---
dispatcher = EventDispatcher()
hub = ViewerHub(send_timeout=settings.viewer_send_timeout_seconds)
repo = SQLiteRepository(settings.sqlite_path, timeout=settings.db_timeout_seconds)

bridge = MqttBridge(
    broker=parse_broker_url(settings.mqtt_url),
    dispatcher=dispatcher,
    command_topic=settings.topic_cmdled,
    client_id=settings.mqtt_client_id,
    keepalive=settings.mqtt_keepalive_seconds,
)

controller = ThresholdController(
    actuator=bridge,
    broadcaster=hub,
    repo=repo,
    threshold=settings.default_threshold,
    temp_range=(settings.sensor_temp_min, settings.sensor_temp_max),
    threshold_range=(settings.threshold_min, settings.threshold_max),
)

bridge.route(settings.topic_temp, controller.handle_temperature)
bridge.route(settings.topic_led, controller.handle_led)

history_service = HistoryService(
    repo,
    default_minutes=settings.history_default_minutes,
    max_minutes=settings.history_max_minutes,
    max_rows=settings.history_max_rows,
    stats_window_minutes=settings.stats_window_minutes,
    timeout_s=settings.query_timeout_seconds,
)


def get_controller() -> ThresholdController:
    return controller


def get_dispatcher() -> EventDispatcher:
    return dispatcher


def get_hub() -> ViewerHub:
    return hub


def get_history() -> HistoryService:
    return history_service


def get_repo() -> SQLiteRepository:
    return repo


def get_mqtt() -> MqttBridge:
    return bridge


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("Starting %s on port %d", settings.app_name, settings.port)
    logger.info("MQTT broker: %s", mask_credentials(settings.mqtt_url))
    logger.info("Store: %s", settings.sqlite_path)
    logger.info("Initial threshold: %.1f C", controller.state.threshold)

    try:
        await repo.init()
    except Exception as e:
        # keep serving live data; writes will fail and be logged
        logger.error("Store init failed: %s", e)

    await dispatcher.start()
    bridge.start()

    try:
        yield
    finally:
        bridge.stop()
        await dispatcher.stop()
        await controller.flush()
        logger.info("Shutdown complete")


app = FastAPI(title=settings.app_name, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

# Make the dependency functions in routes resolve to the real ones
app.dependency_overrides[routes_module.get_controller] = get_controller
app.dependency_overrides[routes_module.get_dispatcher] = get_dispatcher
app.dependency_overrides[routes_module.get_hub] = get_hub
app.dependency_overrides[routes_module.get_history] = get_history
app.dependency_overrides[routes_module.get_repo] = get_repo
app.dependency_overrides[routes_module.get_mqtt] = get_mqtt

app.include_router(api_router, prefix="/api")
app.include_router(root_router)
