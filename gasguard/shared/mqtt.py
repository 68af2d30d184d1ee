"""MQTT configuration, topic layout and the wire codec."""

import json
import logging
import math
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

from .exceptions import MalformedMessageError
from .models import AlertLevel, CommandOrigin, RelayCommand, RelayState, SensorSample

logger = logging.getLogger(__name__)

MESSAGE_DATA = "data"
MESSAGE_ALERT = "alert"
MESSAGE_STATUS = "status"
MESSAGE_CONTROL = "control"

CONTROL_RELAY_ON = "RELAY_ON"
CONTROL_RELAY_OFF = "RELAY_OFF"


@dataclass
class MQTTConfig:
    """MQTT broker configuration."""
    broker: str = "localhost"
    port: int = 1883
    client_id: str = "gasguard-client"
    keepalive: int = 60
    qos: int = 1
    username: Optional[str] = None
    password: Optional[str] = None
    tls: bool = False
    connect_timeout: float = 10.0

    @classmethod
    def from_dict(cls, data: dict) -> "MQTTConfig":
        """Create config from dictionary.

        Credentials fall back to MQTT_USERNAME / MQTT_PASSWORD so they can
        live in .env rather than the YAML file.
        """
        return cls(
            broker=os.getenv("MQTT_BROKER") or data.get("broker", "localhost"),
            port=data.get("port", 1883),
            client_id=data.get("client_id", "gasguard-client"),
            keepalive=data.get("keepalive", 60),
            qos=data.get("qos", 1),
            username=data.get("username") or os.getenv("MQTT_USERNAME"),
            password=data.get("password") or os.getenv("MQTT_PASSWORD"),
            tls=data.get("tls", False),
            connect_timeout=data.get("connect_timeout", 10.0),
        )

    @property
    def credentials(self) -> Optional[Tuple[str, Optional[str]]]:
        if not self.username:
            return None
        return self.username, self.password


@dataclass(frozen=True)
class TopicSet:
    """Topics for one sensing node, all under a common base.

    e.g. base "gasguard/kitchen" gives gasguard/kitchen/data,
    gasguard/kitchen/alert, gasguard/kitchen/status, gasguard/kitchen/control.
    """
    base: str

    @property
    def data(self) -> str:
        return f"{self.base}/{MESSAGE_DATA}"

    @property
    def alert(self) -> str:
        return f"{self.base}/{MESSAGE_ALERT}"

    @property
    def status(self) -> str:
        return f"{self.base}/{MESSAGE_STATUS}"

    @property
    def control(self) -> str:
        return f"{self.base}/{MESSAGE_CONTROL}"

    def kind_of(self, topic: str) -> Optional[str]:
        """Return the message kind a topic carries, or None if it is foreign."""
        prefix = f"{self.base}/"
        if not topic.startswith(prefix):
            return None
        kind = topic[len(prefix):]
        if kind in (MESSAGE_DATA, MESSAGE_ALERT, MESSAGE_STATUS, MESSAGE_CONTROL):
            return kind
        return None


@dataclass(frozen=True)
class DataMessage:
    node: str
    sample: SensorSample


@dataclass(frozen=True)
class AlertMessage:
    node: str
    level: AlertLevel
    timestamp: float


@dataclass(frozen=True)
class StatusMessage:
    node: str
    relay: RelayState
    uptime: int


InboundMessage = Union[DataMessage, AlertMessage, StatusMessage]


def create_data_payload(node: str, sample: SensorSample) -> str:
    """Create the JSON payload for a data message.

    Absent readings are sent as null.
    """
    return json.dumps({
        "node": node,
        "type": MESSAGE_DATA,
        "temperature": sample.temperature,
        "humidity": sample.humidity,
        "gas": sample.gas_level,
        "timestamp": sample.captured_at,
    })


def create_alert_payload(node: str, level: AlertLevel, timestamp: Optional[float] = None) -> str:
    """Create the JSON payload for an alert message."""
    return json.dumps({
        "node": node,
        "type": MESSAGE_ALERT,
        "level": level.name,
        "timestamp": timestamp if timestamp is not None else time.time(),
    })


def create_status_payload(node: str, relay: RelayState, uptime: int) -> str:
    """Create the JSON payload for a status message (published retained)."""
    return json.dumps({
        "node": node,
        "type": MESSAGE_STATUS,
        "relay": relay.value,
        "uptime": uptime,
    })


def create_control_payload(action: RelayState) -> str:
    """Control payloads are plain strings, not JSON."""
    return CONTROL_RELAY_ON if action == RelayState.ON else CONTROL_RELAY_OFF


def _decode_text(payload: Union[bytes, str]) -> str:
    if isinstance(payload, bytes):
        try:
            return payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedMessageError(f"Payload is not UTF-8: {e}") from e
    return payload


def _number(data: Dict[str, Any], key: str, optional: bool = False) -> Optional[float]:
    value = data.get(key)
    if value is None:
        if optional:
            return None
        raise MalformedMessageError(f"Missing required field '{key}'")
    # bool is an int subclass, reject it explicitly
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedMessageError(f"Field '{key}' must be numeric, got {value!r}")
    try:
        number = float(value)
    except OverflowError as e:
        raise MalformedMessageError(f"Field '{key}' is out of range") from e
    if not math.isfinite(number):
        raise MalformedMessageError(f"Field '{key}' must be finite, got {value!r}")
    return number


def parse_control_payload(payload: Union[bytes, str]) -> RelayCommand:
    """Parse a control payload into a remote relay command.

    Raises:
        MalformedMessageError: If the action is not RELAY_ON or RELAY_OFF.
    """
    text = _decode_text(payload).strip()
    if text == CONTROL_RELAY_ON:
        return RelayCommand(RelayState.ON, CommandOrigin.REMOTE)
    if text == CONTROL_RELAY_OFF:
        return RelayCommand(RelayState.OFF, CommandOrigin.REMOTE)
    raise MalformedMessageError(f"Unrecognized control action: {text!r}")


def parse_payload(payload: Union[bytes, str]) -> InboundMessage:
    """Parse a data, alert or status payload from the sensing node.

    Args:
        payload: JSON bytes or string.

    Returns:
        The decoded message.

    Raises:
        MalformedMessageError: If the payload is not valid JSON, lacks a
            known type, or has missing or mistyped fields.
    """
    text = _decode_text(payload)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedMessageError(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MalformedMessageError(f"Payload must be a JSON object, got {type(data).__name__}")

    node = data.get("node")
    if not isinstance(node, str) or not node:
        raise MalformedMessageError("Missing or empty 'node'")

    kind = data.get("type")
    if kind == MESSAGE_DATA:
        gas = _number(data, "gas")
        if not gas.is_integer():
            raise MalformedMessageError(f"Field 'gas' must be an integer, got {data['gas']!r}")
        sample = SensorSample(
            gas_level=int(gas),
            temperature=_number(data, "temperature", optional=True),
            humidity=_number(data, "humidity", optional=True),
            captured_at=_number(data, "timestamp"),
        )
        return DataMessage(node=node, sample=sample)

    if kind == MESSAGE_ALERT:
        level = data.get("level")
        try:
            alert_level = AlertLevel.from_wire(level)
        except KeyError as e:
            raise MalformedMessageError(f"Unknown alert level: {level!r}") from e
        return AlertMessage(node=node, level=alert_level, timestamp=_number(data, "timestamp"))

    if kind == MESSAGE_STATUS:
        relay = data.get("relay")
        try:
            relay_state = RelayState(relay)
        except ValueError as e:
            raise MalformedMessageError(f"Unknown relay state: {relay!r}") from e
        return StatusMessage(node=node, relay=relay_state, uptime=int(_number(data, "uptime")))

    raise MalformedMessageError(f"Unknown message type: {kind!r}")
