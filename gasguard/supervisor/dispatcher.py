"""Alert dispatcher: fans alerts out to observers and issues safety commands."""

import logging
from typing import List, Sequence

from gasguard.shared.exceptions import TransportError
from gasguard.shared.models import AlertLevel, MirroredState, RelayState
from gasguard.shared.mqtt import TopicSet, create_control_payload
from gasguard.shared.transport import Transport

from .observers import Observer

logger = logging.getLogger(__name__)


def format_alert(node: str, level: AlertLevel, state: MirroredState) -> str:
    """Build the human-readable alert text sent to observers."""
    parts = [f"[{level.name}] {node}"]
    sample = state.last_sample
    if sample is not None:
        parts.append(f"gas={sample.gas_level}")
        if sample.temperature is not None:
            parts.append(f"temp={sample.temperature:.1f}C")
        if sample.humidity is not None:
            parts.append(f"humidity={sample.humidity:.1f}%")
    if level == AlertLevel.CRITICAL:
        parts.append("- relay OFF requested")
    return " ".join(parts)


class AlertDispatcher:
    """Reacts to alert transitions of the mirrored sensing node.

    Observer failures are isolated per observer: they are logged and never
    hold back the relay command or the other observers.
    """

    def __init__(
        self,
        transport: Transport,
        topics: TopicSet,
        observers: Sequence[Observer],
        node_label: str,
    ):
        self.transport = transport
        self.topics = topics
        self.observers: List[Observer] = list(observers)
        self.node_label = node_label
        self.commands_sent = 0
        self.command_failures = 0
        self.observer_failures = 0

    def on_alert_transition(self, level: AlertLevel, state: MirroredState) -> None:
        if level == AlertLevel.NORMAL:
            return

        if level == AlertLevel.CRITICAL:
            # The sensing node has already latched OFF locally; this covers
            # a delayed or lost local path.
            self.send_relay_command(RelayState.OFF)

        message = format_alert(self.node_label, level, state)
        for observer in self.observers:
            try:
                observer.on_alert(level, message)
            except Exception as e:
                self.observer_failures += 1
                logger.error(f"Observer {observer.name} failed on alert: {e}")

    def publish_state(self, state: MirroredState) -> None:
        for observer in self.observers:
            try:
                observer.on_state_updated(state)
            except Exception as e:
                self.observer_failures += 1
                logger.error(f"Observer {observer.name} failed on state update: {e}")

    def send_relay_command(self, action: RelayState) -> bool:
        """Publish a remote relay command to the sensing node."""
        payload = create_control_payload(action)
        try:
            self.transport.publish(self.topics.control, payload, retain=False)
        except TransportError as e:
            self.command_failures += 1
            logger.error(f"Failed to send {payload}: {e}")
            return False
        self.commands_sent += 1
        logger.info(f"Sent {payload} to {self.topics.control}")
        return True
