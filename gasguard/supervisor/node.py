"""Supervisory node: mirror the sensing node, fan out alerts, back up the interlock."""

import asyncio
import logging
from typing import Optional, Sequence

from gasguard.shared.connection import ConnectionManager
from gasguard.shared.runtime import Event, EventKind, NodeRuntime
from gasguard.shared.transport import Transport

from .aggregator import StateAggregator
from .config import SupervisorConfig
from .dispatcher import AlertDispatcher
from .observers import Observer

logger = logging.getLogger(__name__)

TICK_STALENESS = "staleness"


class SupervisorNode:
    """Owns the mirrored state and handles its events one at a time."""

    def __init__(
        self,
        config: SupervisorConfig,
        transport: Transport,
        observers: Sequence[Observer],
        runtime: Optional[NodeRuntime] = None,
    ):
        self.config = config
        self.topics = config.topics
        self.transport = transport
        self.observers = list(observers)
        self.runtime = runtime or NodeRuntime(config.node_id)

        self.aggregator = StateAggregator(
            self.topics,
            stale_after=config.stale_after,
            alert_clear_after=config.alert_clear_after,
            expected_node=config.sensor_node,
        )
        self.dispatcher = AlertDispatcher(transport, self.topics, self.observers, config.sensor_node)
        self.connection = ConnectionManager(
            transport=transport,
            identity=config.mqtt.client_id,
            topics=[self.topics.data, self.topics.alert, self.topics.status],
            backoff=config.backoff,
            schedule_retry=self._schedule_connect,
            credentials=config.mqtt.credentials,
        )

        transport.set_callbacks(
            on_message=self._on_transport_message,
            on_disconnect=self._on_transport_disconnect,
        )

    def _on_transport_message(self, topic: str, payload: bytes) -> None:
        self.runtime.post_threadsafe(Event(EventKind.MESSAGE, topic=topic, payload=payload))

    def _on_transport_disconnect(self, reason: str) -> None:
        self.runtime.post_threadsafe(Event(EventKind.TRANSPORT_LOST, name=reason))

    def _schedule_connect(self, delay: float) -> None:
        self.runtime.post_later(delay, Event(EventKind.CONNECT))

    async def handle(self, event: Event) -> None:
        if event.kind == EventKind.CONNECT:
            await self.connection.connect()
        elif event.kind == EventKind.TRANSPORT_LOST:
            self.connection.on_transport_error(event.name or "")
        elif event.kind == EventKind.MESSAGE:
            self.on_message(event.topic, event.payload)
        elif event.kind == EventKind.TICK and event.name == TICK_STALENESS:
            self.check_timeouts()

    def on_message(self, topic: str, payload: bytes) -> None:
        update = self.aggregator.on_message(topic, payload)
        if update is None:
            return
        self.dispatcher.publish_state(update.state)
        if update.alert_transition is not None:
            self.dispatcher.on_alert_transition(update.alert_transition, update.state)

    def check_timeouts(self) -> None:
        state = self.aggregator.check_timeouts()
        if state is not None:
            self.dispatcher.publish_state(state)

    async def run(self) -> None:
        """Run until the runtime is stopped."""
        logger.info(f"Starting supervisor {self.config.node_id} watching {self.topics.base}")
        for observer in self.observers:
            try:
                await observer.start()
            except Exception as e:
                logger.error(f"Observer {observer.name} failed to start: {e}")

        self.runtime.post(Event(EventKind.CONNECT))
        self.runtime.every(self.config.staleness_check_interval, TICK_STALENESS)

        try:
            await self.runtime.run(self.handle)
        finally:
            await asyncio.to_thread(self.transport.disconnect)
            for observer in self.observers:
                try:
                    await observer.stop()
                except Exception as e:
                    logger.error(f"Observer {observer.name} failed to stop: {e}")
            logger.info("Supervisor stopped")

    def stop(self) -> None:
        self.runtime.stop()
