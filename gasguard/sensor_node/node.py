"""Sensing node: sample, classify, enforce the interlock, report."""

import asyncio
import logging
from typing import Optional

from gasguard.shared.connection import ConnectionManager
from gasguard.shared.exceptions import (
    MalformedMessageError,
    RejectedCommandError,
    SensorReadError,
)
from gasguard.shared.models import AlertLevel, CommandOrigin, RelayTransition, SensorSample
from gasguard.shared.mqtt import parse_control_payload
from gasguard.shared.runtime import Event, EventKind, NodeRuntime
from gasguard.shared.transport import Transport

from .config import SensorNodeConfig
from .emitter import MessageEmitter
from .interlock import RelayInterlock
from .outputs.base import RelayOutput
from .sources.base import SensorSource
from .thresholds import classify

logger = logging.getLogger(__name__)

TICK_SAMPLE = "sample"
TICK_DATA = "data"
TICK_STATUS = "status"


class SensingNode:
    """Owns all sensing-node state and handles its events one at a time."""

    def __init__(
        self,
        config: SensorNodeConfig,
        transport: Transport,
        source: SensorSource,
        output: RelayOutput,
        runtime: Optional[NodeRuntime] = None,
    ):
        self.config = config
        self.topics = config.topics
        self.transport = transport
        self.source = source
        self.output = output
        self.runtime = runtime or NodeRuntime(config.node_id)

        self.interlock = RelayInterlock(config.initial_relay)
        self.emitter = MessageEmitter(transport, config.node_id, self.topics)
        self.connection = ConnectionManager(
            transport=transport,
            identity=config.mqtt.client_id,
            topics=[self.topics.control],
            backoff=config.backoff,
            schedule_retry=self._schedule_connect,
            credentials=config.mqtt.credentials,
        )

        self.last_sample: Optional[SensorSample] = None
        self.last_level: Optional[AlertLevel] = None
        self.malformed_count = 0
        self.read_failures = 0
        self._output_in_sync = False

        transport.set_callbacks(
            on_message=self._on_transport_message,
            on_disconnect=self._on_transport_disconnect,
        )

    # Transport thread -> event queue

    def _on_transport_message(self, topic: str, payload: bytes) -> None:
        self.runtime.post_threadsafe(Event(EventKind.MESSAGE, topic=topic, payload=payload))

    def _on_transport_disconnect(self, reason: str) -> None:
        self.runtime.post_threadsafe(Event(EventKind.TRANSPORT_LOST, name=reason))

    def _schedule_connect(self, delay: float) -> None:
        self.runtime.post_later(delay, Event(EventKind.CONNECT))

    # Event handling

    async def handle(self, event: Event) -> None:
        if event.kind == EventKind.CONNECT:
            if await self.connection.connect():
                # Refresh the retained status for anyone who missed it
                self.emitter.emit_status(self.interlock.state)
        elif event.kind == EventKind.TRANSPORT_LOST:
            self.connection.on_transport_error(event.name or "")
        elif event.kind == EventKind.MESSAGE:
            await self.on_control_message(event.topic, event.payload)
        elif event.kind == EventKind.TICK:
            if event.name == TICK_SAMPLE:
                await self.run_cycle()
            elif event.name == TICK_DATA:
                self.publish_data()
            elif event.name == TICK_STATUS:
                await self.refresh_status()

    async def run_cycle(self) -> Optional[AlertLevel]:
        """One sample/classify/interlock pass.

        Returns the alert level, or None when the sensor could not be read
        (the latch is left exactly as it was).
        """
        try:
            sample = self.source.read()
        except SensorReadError as e:
            self.read_failures += 1
            logger.warning(f"Sensor read failed, skipping cycle: {e}")
            return None

        self.last_sample = sample
        level = classify(sample, self.config.thresholds)
        if level != self.last_level:
            logger.info(
                f"Alert level {level.name} (gas={sample.gas_level}, "
                f"temp={sample.temperature}, humidity={sample.humidity})"
            )
        self.last_level = level

        transition = self.interlock.on_local_classification(level)
        if transition is not None:
            await self._apply(transition)

        # Level-triggered: re-sent every cycle while not NORMAL
        if level != AlertLevel.NORMAL:
            self.emitter.emit_alert(level)
        return level

    async def on_control_message(self, topic: Optional[str], payload: Optional[bytes]) -> None:
        if topic != self.topics.control:
            logger.debug(f"Ignoring message on unexpected topic {topic}")
            return

        try:
            command = parse_control_payload(payload or b"")
            transition = self.interlock.on_remote_command(command)
        except MalformedMessageError as e:
            self.malformed_count += 1
            logger.warning(f"Rejected malformed control message: {e}")
            return
        except RejectedCommandError as e:
            logger.warning(f"{e} (rejected {self.interlock.rejected_count} so far)")
            return

        await self._apply(transition)

    async def _apply(self, transition: RelayTransition) -> None:
        """Drive the hardware after an accepted transition and report it."""
        if transition.changed or not self._output_in_sync:
            await self._drive_output()
        if transition.changed or transition.origin == CommandOrigin.REMOTE:
            self.emitter.emit_status(self.interlock.state)

    async def _drive_output(self) -> None:
        state = self.interlock.state
        try:
            self._output_in_sync = await self.output.set_state(state)
        except Exception as e:
            self._output_in_sync = False
            logger.error(f"Relay output failed to switch {state.value}: {e}")
        if not self._output_in_sync:
            logger.error(f"Relay output not confirmed {state.value}, will retry on next status refresh")

    def publish_data(self) -> None:
        if self.last_sample is None:
            logger.debug("No sample yet, skipping data message")
            return
        self.emitter.emit_data(self.last_sample)

    async def refresh_status(self) -> None:
        if not self._output_in_sync:
            await self._drive_output()
        self.emitter.emit_status(self.interlock.state)

    # Lifecycle

    async def run(self) -> None:
        """Run until the runtime is stopped."""
        logger.info(
            f"Starting sensing node {self.config.node_id} "
            f"(topics={self.topics.base}, relay={self.interlock.state.value})"
        )
        await self._drive_output()

        self.runtime.post(Event(EventKind.CONNECT))
        self.runtime.every(self.config.sample_interval, TICK_SAMPLE)
        self.runtime.every(self.config.data_interval, TICK_DATA)
        self.runtime.every(self.config.status_interval, TICK_STATUS)

        try:
            await self.runtime.run(self.handle)
        finally:
            await asyncio.to_thread(self.transport.disconnect)
            await self.output.close()
            self.source.close()
            logger.info("Sensing node stopped")

    def stop(self) -> None:
        self.runtime.stop()
