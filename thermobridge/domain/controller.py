from __future__ import annotations
import asyncio
import logging
from datetime import datetime
from typing import Any, Optional

from .interfaces import Actuator, Broadcaster, Repository
from .models import ControlSnapshot, ControlState, LedTransition, Reading
from .payloads import parse_led, parse_temperature, parse_threshold

logger = logging.getLogger(__name__)


def desired_led(temperature: float, threshold: float) -> int:
    return 1 if temperature >= threshold else 0


class ThresholdController:
    """Owns the control state and turns sensor/viewer events into side effects.

    Handlers are meant to run one at a time (see ``EventDispatcher``). Each one
    applies its state changes in a single synchronous block, then emits
    broadcasts and actuator commands in that order, then schedules the store
    write as a background task that is never awaited on the event path.
    """

    def __init__(
        self,
        actuator: Actuator,
        broadcaster: Broadcaster,
        repo: Repository,
        threshold: float = 30.0,
        temp_range: tuple[float, float] = (-55.0, 150.0),
        threshold_range: tuple[float, float] = (0.0, 100.0),
    ) -> None:
        self._actuator = actuator
        self._broadcaster = broadcaster
        self._repo = repo
        self._temp_range = temp_range
        self._threshold_range = threshold_range

        self.state = ControlState(threshold=float(threshold))
        self.persist_failures = 0
        self._pending: set[asyncio.Task] = set()

    def snapshot(self) -> ControlSnapshot:
        s = self.state
        return ControlSnapshot(
            threshold=s.threshold,
            last_led=s.last_led,
            last_temperature=s.last_temperature,
        )

    # --- inbound events ---

    async def handle_temperature(self, raw_payload: Any, arrival: datetime) -> None:
        lo, hi = self._temp_range
        temp = parse_temperature(raw_payload, lo, hi)
        if temp is None:
            logger.warning("Invalid temperature ignored: %r", raw_payload)
            return

        self.state.last_temperature = temp
        transition = self._evaluate(temp)
        led = self.state.last_led

        await self._broadcast("temp", temp)
        if transition:
            await self._apply(transition)
            logger.info(
                "LED %s - temp=%.2f threshold=%.2f",
                transition.command, temp, self.state.threshold,
            )

        self._persist(Reading(ts_utc=arrival, temp=temp, led=led))

    async def handle_led(self, raw_payload: Any, arrival: datetime) -> None:
        led = parse_led(raw_payload)
        if led == self.state.last_led:
            logger.debug("LED confirmation %d matches current state", led)
            return

        self.state.last_led = led
        temp = self.state.last_temperature

        await self._broadcast("led", led)
        logger.info("LED state reported by device: %d", led)

        self._persist(Reading(ts_utc=arrival, temp=temp, led=led))

    async def handle_threshold_change(self, raw_value: Any, requester_id: str) -> None:
        lo, hi = self._threshold_range
        new_threshold = parse_threshold(raw_value, lo, hi)
        if new_threshold is None:
            logger.warning("Invalid threshold %r from viewer %s", raw_value, requester_id)
            return

        old_threshold = self.state.threshold
        self.state.threshold = new_threshold
        transition = None
        if self.state.last_temperature is not None:
            transition = self._evaluate(self.state.last_temperature)

        await self._broadcast("threshold", new_threshold)
        logger.info(
            "Threshold updated %.2f -> %.2f by viewer %s",
            old_threshold, new_threshold, requester_id,
        )

        if transition:
            await self._apply(transition)
            logger.info("LED %s after threshold change", transition.command)

    async def on_viewer_connect(self, viewer: Any) -> None:
        snap = self.snapshot()
        await self._send(viewer, "threshold", snap.threshold)
        await self._send(viewer, "led", snap.last_led)
        if snap.last_temperature is not None:
            await self._send(viewer, "temp", snap.last_temperature)

    # --- transitions ---

    def _evaluate(self, temperature: float) -> Optional[LedTransition]:
        desired = desired_led(temperature, self.state.threshold)
        if desired == self.state.last_led:
            return None
        self.state.last_led = desired
        return LedTransition(led=desired, command="ON" if desired else "OFF")

    async def _apply(self, transition: LedTransition) -> None:
        try:
            await self._actuator.set_state(
                bool(transition.led), f"threshold {self.state.threshold:g}"
            )
        except Exception:
            logger.exception("Actuator command %s failed", transition.command)
        await self._broadcast("led", transition.led)

    # --- side-effect sinks ---

    async def _broadcast(self, event: str, data: Any) -> None:
        try:
            await self._broadcaster.broadcast(event, data)
        except Exception:
            logger.exception("Broadcast of %s failed", event)

    async def _send(self, viewer: Any, event: str, data: Any) -> None:
        try:
            await self._broadcaster.send(viewer, event, data)
        except Exception:
            logger.exception("Send of %s to viewer failed", event)

    async def _write(self, reading: Reading) -> None:
        await self._repo.insert_reading(reading)

    def _persist(self, reading: Reading) -> None:
        task = asyncio.create_task(self._write(reading), name="persist_reading")
        self._pending.add(task)
        task.add_done_callback(lambda t, r=reading: self._on_persisted(t, r))

    def _on_persisted(self, task: asyncio.Task, reading: Reading) -> None:
        self._pending.discard(task)
        if task.cancelled():
            logger.warning("Store write cancelled: %s", reading)
            return
        exc = task.exception()
        if exc is not None:
            self.persist_failures += 1
            logger.error("Failed to store reading temp=%s led=%s: %s", reading.temp, reading.led, exc)
        else:
            logger.debug("Stored reading temp=%s led=%s", reading.temp, reading.led)

    async def flush(self) -> None:
        """Wait for in-flight store writes."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
