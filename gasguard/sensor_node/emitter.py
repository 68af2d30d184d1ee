"""Outbound data, alert and status messages from the sensing node."""

import logging
import time
from typing import Callable, Optional

from gasguard.shared.exceptions import TransportError
from gasguard.shared.models import AlertLevel, RelayState, SensorSample
from gasguard.shared.mqtt import (
    TopicSet,
    create_alert_payload,
    create_data_payload,
    create_status_payload,
)
from gasguard.shared.transport import Transport

logger = logging.getLogger(__name__)


class MessageEmitter:
    """Publishes the sensing node's three message kinds.

    Delivery is at-most-once: a failed publish is logged and dropped.
    Status is published retained so a late subscriber gets the relay state
    straight away.
    """

    def __init__(
        self,
        transport: Transport,
        node_id: str,
        topics: TopicSet,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ):
        self.transport = transport
        self.node_id = node_id
        self.topics = topics
        self._clock = clock
        self._wall_clock = wall_clock
        self._started_at = clock()
        self.dropped = 0

    @property
    def uptime(self) -> int:
        return int(self._clock() - self._started_at)

    def _publish(self, topic: str, payload: str, retain: bool = False) -> bool:
        try:
            self.transport.publish(topic, payload, retain=retain)
            return True
        except TransportError as e:
            self.dropped += 1
            logger.warning(f"Dropping message for {topic}: {e}")
            return False

    def emit_data(self, sample: SensorSample) -> bool:
        return self._publish(self.topics.data, create_data_payload(self.node_id, sample))

    def emit_alert(self, level: AlertLevel, timestamp: Optional[float] = None) -> bool:
        payload = create_alert_payload(
            self.node_id, level, timestamp if timestamp is not None else self._wall_clock()
        )
        return self._publish(self.topics.alert, payload)

    def emit_status(self, relay: RelayState) -> bool:
        payload = create_status_payload(self.node_id, relay, self.uptime)
        return self._publish(self.topics.status, payload, retain=True)
