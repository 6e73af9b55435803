"""MQTT side of the bridge: sensor subscriptions in, LED commands out."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Optional
from urllib.parse import urlparse

import paho.mqtt.client as mqtt

from ..core.timeutil import now_utc, to_iso_z
from ..services.dispatcher import EventDispatcher

logger = logging.getLogger(__name__)


TopicHandler = Callable[[str, datetime], Awaitable[None]]


@dataclass
class BrokerConfig:
    host: str
    port: int = 1883
    tls: bool = False
    username: Optional[str] = None
    password: Optional[str] = None


def parse_broker_url(url: str) -> BrokerConfig:
    """``mqtt://[user:pass@]host[:port]`` or ``mqtts://...``."""
    u = urlparse(url)
    scheme = (u.scheme or "mqtt").lower()
    if scheme not in ("mqtt", "tcp", "mqtts", "ssl"):
        raise ValueError(f"Unsupported MQTT URL scheme: {u.scheme!r}")
    if not u.hostname:
        raise ValueError(f"MQTT URL has no host: {url!r}")
    tls = scheme in ("mqtts", "ssl")
    return BrokerConfig(
        host=u.hostname,
        port=u.port or (8883 if tls else 1883),
        tls=tls,
        username=u.username,
        password=u.password,
    )


def mask_credentials(url: str) -> str:
    return re.sub(r"//[^/@]*@", "//***:***@", url)


class MqttBridge:
    """
    paho-mqtt client running its own network thread.
    Responsible for: subscriptions, routing payloads to the dispatcher, and
    publishing actuator commands. Reconnects are left to paho.
    """

    actuator_id = "mqtt_led"

    def __init__(
        self,
        broker: BrokerConfig,
        dispatcher: EventDispatcher,
        command_topic: str,
        client_id: str = "thermobridge",
        keepalive: int = 60,
    ) -> None:
        self._broker = broker
        self._dispatcher = dispatcher
        self._command_topic = command_topic
        self._keepalive = keepalive
        self._routes: dict[str, TopicHandler] = {}

        self._client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=client_id,
            protocol=mqtt.MQTTv311,
        )
        if broker.username:
            self._client.username_pw_set(broker.username, broker.password)
        if broker.tls:
            self._client.tls_set()

        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_message = self._on_message
        self._client.reconnect_delay_set(min_delay=1, max_delay=10)

        self._started = False

    def route(self, topic: str, handler: TopicHandler) -> None:
        self._routes[topic] = handler

    @property
    def topics(self) -> list[str]:
        return list(self._routes)

    @property
    def is_connected(self) -> bool:
        return self._client.is_connected()

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        logger.info("[MQTT] Connecting to %s:%d", self._broker.host, self._broker.port)
        try:
            # connect_async lets loop_start keep retrying if the broker is down
            self._client.connect_async(self._broker.host, self._broker.port, self._keepalive)
            self._client.loop_start()
        except Exception as e:
            logger.error("[MQTT] Cannot start client for %s:%d: %s", self._broker.host, self._broker.port, e)

    def stop(self) -> None:
        if not self._started:
            return
        try:
            self._client.disconnect()
            self._client.loop_stop()
        except Exception as e:
            logger.warning("[MQTT] Disconnect error: %s", e)
        finally:
            self._started = False

    # --- Actuator ---

    async def set_state(self, on: bool, reason: str) -> None:
        command = "ON" if on else "OFF"
        info = self._client.publish(self._command_topic, command, qos=0)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            logger.warning(
                "[MQTT] Publish %s to %s failed rc=%s (reason=%s)",
                command, self._command_topic, info.rc, reason,
            )
            return
        logger.info("[MQTT] LED command %s -> %s (reason=%s)", command, self._command_topic, reason)

    # --- paho callbacks (network thread) ---

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code.is_failure:
            logger.error("[MQTT] Connection refused: %s", reason_code)
            return
        logger.info("[MQTT] Connected to %s:%d", self._broker.host, self._broker.port)
        if not self._routes:
            return
        result, _mid = client.subscribe([(topic, 0) for topic in self._routes])
        if result != mqtt.MQTT_ERR_SUCCESS:
            logger.error("[MQTT] Subscribe to %s failed rc=%s", self.topics, result)
        else:
            logger.info("[MQTT] Subscribed to %s", self.topics)

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code == 0:
            logger.info("[MQTT] Disconnected")
        else:
            logger.warning("[MQTT] Disconnected (%s), reconnecting", reason_code)

    def _on_message(self, client, userdata, msg):
        arrival = now_utc()
        payload = msg.payload.decode("utf-8", errors="replace").strip()
        logger.debug("[MQTT] topic=%s payload=%r at %s", msg.topic, payload, to_iso_z(arrival))

        handler = self._routes.get(msg.topic)
        if handler is None:
            logger.debug("[MQTT] No route for topic %s", msg.topic)
            return
        self._dispatcher.submit_threadsafe(f"mqtt:{msg.topic}", handler, payload, arrival)
