"""State aggregator: the supervisory node's mirror of the sensing node."""

import logging
import threading
import time
from dataclasses import dataclass, replace
from typing import Callable, Optional, Union

from gasguard.shared.exceptions import MalformedMessageError
from gasguard.shared.models import AlertLevel, MirroredState
from gasguard.shared.mqtt import (
    MESSAGE_ALERT,
    MESSAGE_DATA,
    MESSAGE_STATUS,
    AlertMessage,
    DataMessage,
    InboundMessage,
    StatusMessage,
    TopicSet,
    parse_payload,
)

logger = logging.getLogger(__name__)

_MESSAGE_KINDS = {
    DataMessage: MESSAGE_DATA,
    AlertMessage: MESSAGE_ALERT,
    StatusMessage: MESSAGE_STATUS,
}


@dataclass(frozen=True)
class AggregateUpdate:
    """Result of applying one inbound message."""
    state: MirroredState
    message: InboundMessage
    alert_transition: Optional[AlertLevel] = None


class StateAggregator:
    """Applies inbound messages to the mirrored state, all or nothing.

    Every read and write goes through one lock, so observers on other
    threads always get a consistent copy.
    """

    def __init__(
        self,
        topics: TopicSet,
        stale_after: float = 30.0,
        alert_clear_after: Optional[float] = 30.0,
        expected_node: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the aggregator.

        Args:
            topics: Topic layout of the mirrored sensing node.
            stale_after: Seconds without any update before the state is
                flagged stale.
            alert_clear_after: Seconds without an alert message before the
                mirrored alert falls back to NORMAL. The sensing node only
                sends alerts while not NORMAL, so silence is how a cleared
                condition shows up here. None keeps the last alert forever.
            expected_node: If set, messages from any other node id are
                treated as malformed.
            clock: Wall clock, injectable for tests.
        """
        self.topics = topics
        self.stale_after = stale_after
        self.alert_clear_after = alert_clear_after
        self.expected_node = expected_node
        self._clock = clock
        self._started_at = clock()
        self._last_alert_at: Optional[float] = None
        self._state = MirroredState()
        self._lock = threading.Lock()

    def snapshot(self) -> MirroredState:
        with self._lock:
            return replace(self._state)

    @property
    def malformed_count(self) -> int:
        with self._lock:
            return self._state.malformed_count

    def _validate(self, topic: str, payload: Union[bytes, str]) -> InboundMessage:
        topic_kind = self.topics.kind_of(topic)
        if topic_kind is None:
            raise MalformedMessageError(f"Unexpected topic {topic}")

        message = parse_payload(payload)

        declared = _MESSAGE_KINDS[type(message)]
        if declared != topic_kind:
            raise MalformedMessageError(
                f"Message type '{declared}' does not match topic {topic}"
            )
        if self.expected_node and message.node != self.expected_node:
            raise MalformedMessageError(
                f"Message from unknown node '{message.node}' (expected '{self.expected_node}')"
            )
        return message

    def on_message(self, topic: str, payload: Union[bytes, str]) -> Optional[AggregateUpdate]:
        """Apply one inbound message.

        Returns:
            The update with a snapshot of the new state, or None if the
            message was malformed (state untouched, error counted).
        """
        try:
            message = self._validate(topic, payload)
        except MalformedMessageError as e:
            with self._lock:
                self._state.malformed_count += 1
                count = self._state.malformed_count
            logger.warning(f"Discarding malformed message on {topic}: {e} ({count} so far)")
            return None

        now = self._clock()
        transition = None
        with self._lock:
            state = self._state
            if isinstance(message, DataMessage):
                state.last_sample = message.sample
            elif isinstance(message, AlertMessage):
                self._last_alert_at = now
                if message.level != state.last_alert:
                    transition = message.level
                state.last_alert = message.level
            elif isinstance(message, StatusMessage):
                state.last_relay = message.relay

            if state.stale:
                logger.info("Sensing node state is fresh again")
            state.last_updated_at = now
            state.stale = False
            snapshot = replace(state)

        if transition is not None:
            logger.info(f"Alert transition to {transition.name} from {message.node}")
        return AggregateUpdate(state=snapshot, message=message, alert_transition=transition)

    def check_timeouts(self, now: Optional[float] = None) -> Optional[MirroredState]:
        """Re-evaluate staleness and alert expiry.

        Returns:
            A snapshot if either flag changed, None otherwise.
        """
        now = now if now is not None else self._clock()
        changed = False
        with self._lock:
            state = self._state
            reference = state.last_updated_at if state.last_updated_at is not None else self._started_at
            stale = now - reference > self.stale_after
            if stale != state.stale:
                state.stale = stale
                changed = True
                if stale:
                    logger.warning(f"Sensing node state stale ({now - reference:.0f}s without updates)")

            if (
                self.alert_clear_after is not None
                and state.last_alert != AlertLevel.NORMAL
                and self._last_alert_at is not None
                and now - self._last_alert_at > self.alert_clear_after
            ):
                logger.info(f"No alert for {self.alert_clear_after:.0f}s, {state.last_alert.name} cleared")
                state.last_alert = AlertLevel.NORMAL
                changed = True

            return replace(state) if changed else None
