"""Publish/subscribe transport used by both nodes."""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional, Tuple

import paho.mqtt.client as mqtt
from paho.mqtt.enums import CallbackAPIVersion

from .exceptions import TransportError
from .mqtt import MQTTConfig

logger = logging.getLogger(__name__)

MessageCallback = Callable[[str, bytes], None]
DisconnectCallback = Callable[[str], None]


class Transport(ABC):
    """Narrow interface over the broker connection.

    Callbacks may fire on a transport-owned thread; receivers must hand
    them over to their own event loop rather than mutate state directly.
    Delivery is at-most-once.
    """

    def __init__(self):
        self._message_callback: Optional[MessageCallback] = None
        self._disconnect_callback: Optional[DisconnectCallback] = None

    def set_callbacks(
        self,
        on_message: Optional[MessageCallback] = None,
        on_disconnect: Optional[DisconnectCallback] = None,
    ) -> None:
        self._message_callback = on_message
        self._disconnect_callback = on_disconnect

    @abstractmethod
    def connect(self, identity: str, credentials: Optional[Tuple[str, Optional[str]]] = None) -> None:
        """Open a session as `identity`. Raises TransportError on failure."""
        pass

    @abstractmethod
    def subscribe(self, topic: str) -> None:
        """Subscribe and wait for the broker to acknowledge it.

        Raises TransportError if the broker refuses or never answers.
        """
        pass

    @abstractmethod
    def publish(self, topic: str, payload: str, retain: bool = False) -> None:
        """Publish a payload. Raises TransportError if it cannot be queued."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        pass

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        pass


class PahoTransport(Transport):
    """Transport backed by paho-mqtt with reconnection left to the caller."""

    def __init__(self, config: MQTTConfig):
        super().__init__()
        self.config = config
        self.client: Optional[mqtt.Client] = None
        self._connected = False
        self._connect_event = threading.Event()
        self._connect_reason: Optional[str] = None
        self._lock = threading.Lock()
        self._suback_events: Dict[int, threading.Event] = {}
        self._suback_results: Dict[int, bool] = {}

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        """Handle CONNACK."""
        if reason_code == 0:
            logger.info(f"Connected to MQTT broker at {self.config.broker}:{self.config.port}")
            self._connected = True
        else:
            logger.error(f"Failed to connect to MQTT broker: {reason_code}")
            self._connected = False
        self._connect_reason = str(reason_code)
        self._connect_event.set()

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties):
        """Handle loss of the session."""
        was_connected = self._connected
        self._connected = False
        if client is not self.client:
            # Session we already tore down ourselves
            return
        logger.warning(f"Disconnected from MQTT broker (reason={reason_code})")
        if was_connected and self._disconnect_callback:
            self._disconnect_callback(str(reason_code))

    def _on_subscribe(self, client, userdata, mid, reason_code_list, properties):
        ok = not any(rc.is_failure for rc in reason_code_list)
        with self._lock:
            self._suback_results[mid] = ok
            self._suback_events.setdefault(mid, threading.Event()).set()

    def _on_message(self, client, userdata, msg: mqtt.MQTTMessage):
        if not self._message_callback:
            return
        try:
            self._message_callback(msg.topic, msg.payload)
        except Exception as e:
            logger.error(f"Error handing off message from {msg.topic}: {e}")

    def connect(self, identity: str, credentials: Optional[Tuple[str, Optional[str]]] = None) -> None:
        self._teardown()
        self._connect_event.clear()
        self._connect_reason = None

        client = mqtt.Client(
            callback_api_version=CallbackAPIVersion.VERSION2,
            client_id=identity,
            reconnect_on_failure=False,
        )
        if credentials:
            client.username_pw_set(*credentials)
        if self.config.tls:
            client.tls_set()
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_subscribe = self._on_subscribe
        client.on_message = self._on_message
        self.client = client

        logger.info(f"Connecting to MQTT broker at {self.config.broker}:{self.config.port} as {identity}")

        try:
            client.connect(self.config.broker, self.config.port, keepalive=self.config.keepalive)
        except (OSError, ValueError) as e:
            self.client = None
            raise TransportError(f"Failed to reach MQTT broker: {e}") from e

        client.loop_start()

        if not self._connect_event.wait(timeout=self.config.connect_timeout):
            self._teardown()
            raise TransportError("Timeout waiting for MQTT connection")
        if not self._connected:
            self._teardown()
            raise TransportError(f"MQTT broker refused connection: {self._connect_reason}")

    def subscribe(self, topic: str) -> None:
        client = self.client
        if client is None or not self._connected:
            raise TransportError(f"Cannot subscribe to {topic}: not connected")

        result, mid = client.subscribe(topic, qos=self.config.qos)
        if result != mqtt.MQTT_ERR_SUCCESS:
            raise TransportError(f"Failed to subscribe to {topic}: rc={result}")

        with self._lock:
            event = self._suback_events.setdefault(mid, threading.Event())
        acked = event.wait(timeout=self.config.connect_timeout)
        with self._lock:
            self._suback_events.pop(mid, None)
            ok = self._suback_results.pop(mid, False)

        if not acked:
            raise TransportError(f"Timeout waiting for SUBACK on {topic}")
        if not ok:
            raise TransportError(f"Broker refused subscription to {topic}")
        logger.info(f"Subscribed to: {topic}")

    def publish(self, topic: str, payload: str, retain: bool = False) -> None:
        client = self.client
        if client is None or not self._connected:
            raise TransportError(f"Cannot publish to {topic}: not connected")

        result = client.publish(topic, payload, qos=self.config.qos, retain=retain)
        if result.rc != mqtt.MQTT_ERR_SUCCESS:
            raise TransportError(f"Failed to publish to {topic}: rc={result.rc}")
        logger.debug(f"Published to {topic}: {payload}")

    def _teardown(self) -> None:
        client, self.client = self.client, None
        self._connected = False
        if client:
            client.loop_stop()
            client.disconnect()

    def disconnect(self) -> None:
        """Disconnect from the MQTT broker."""
        self._teardown()

    @property
    def is_connected(self) -> bool:
        return self._connected
