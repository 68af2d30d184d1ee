"""Pytest configuration and fixtures for gasguard tests."""

import threading
from typing import Dict, List, Optional, Tuple

import pytest

from gasguard.sensor_node.config import SensorNodeConfig
from gasguard.sensor_node.node import SensingNode
from gasguard.sensor_node.outputs.simulated import SimulatedRelay
from gasguard.sensor_node.sources.base import SensorSource
from gasguard.sensor_node.thresholds import Thresholds
from gasguard.shared.connection import BackoffPolicy
from gasguard.shared.exceptions import SensorReadError, TransportError
from gasguard.shared.models import AlertLevel, MirroredState, RelayState, SensorSample
from gasguard.shared.mqtt import MQTTConfig
from gasguard.shared.runtime import Event, EventKind
from gasguard.shared.transport import Transport
from gasguard.supervisor.config import SupervisorConfig
from gasguard.supervisor.node import SupervisorNode
from gasguard.supervisor.observers import Observer

TOPIC_BASE = "gasguard/sensor-1"


class FakeBroker:
    """In-memory broker with exact-match topics and retained messages."""

    def __init__(self):
        self.clients: List["FakeTransport"] = []
        self.retained: Dict[str, str] = {}
        self.published: List[Tuple[str, str, bool]] = []
        self.lock = threading.Lock()

    def route(self, topic: str, payload: str, retain: bool) -> None:
        with self.lock:
            self.published.append((topic, payload, retain))
            if retain:
                self.retained[topic] = payload
            receivers = [c for c in self.clients if c.connected and topic in c.subscriptions]
        for client in receivers:
            client.inbox.append((topic, payload.encode("utf-8")))

    def messages_on(self, topic: str) -> List[str]:
        return [payload for t, payload, _ in self.published if t == topic]


class FakeTransport(Transport):
    """Transport wired to a FakeBroker.

    Inbound messages collect in `inbox`; tests feed them to a node with
    `deliver`, standing in for the transport thread posting events.
    """

    def __init__(self, broker: FakeBroker):
        super().__init__()
        self.broker = broker
        self.connected = False
        self.subscriptions: List[str] = []
        self.subscribe_calls: List[str] = []
        self.inbox: List[Tuple[str, bytes]] = []
        self.connect_calls: List[Tuple[str, Optional[tuple]]] = []
        self.fail_connects = 0
        self.fail_subscribes: Dict[str, int] = {}
        broker.clients.append(self)

    def connect(self, identity, credentials=None):
        self.connect_calls.append((identity, credentials))
        if self.fail_connects > 0:
            self.fail_connects -= 1
            raise TransportError("Connection refused")
        self.connected = True
        self.subscriptions = []

    def subscribe(self, topic):
        self.subscribe_calls.append(topic)
        if not self.connected:
            raise TransportError("not connected")
        if self.fail_subscribes.get(topic, 0) > 0:
            self.fail_subscribes[topic] -= 1
            raise TransportError(f"Broker refused subscription to {topic}")
        self.subscriptions.append(topic)
        retained = self.broker.retained.get(topic)
        if retained is not None:
            self.inbox.append((topic, retained.encode("utf-8")))

    def publish(self, topic, payload, retain=False):
        if not self.connected:
            raise TransportError(f"Cannot publish to {topic}: not connected")
        self.broker.route(topic, payload, retain)

    def disconnect(self):
        self.connected = False
        self.subscriptions = []

    def drop(self, reason="connection lost"):
        """Simulate the broker going away underneath us."""
        self.connected = False
        self.subscriptions = []
        if self._disconnect_callback:
            self._disconnect_callback(reason)

    @property
    def is_connected(self):
        return self.connected


async def deliver(node, transport: FakeTransport) -> int:
    """Hand every queued inbound message to the node, in order."""
    count = 0
    while transport.inbox:
        topic, payload = transport.inbox.pop(0)
        await node.handle(Event(EventKind.MESSAGE, topic=topic, payload=payload))
        count += 1
    return count


class ScriptedSource(SensorSource):
    """Returns queued samples; raises SensorReadError for queued None entries."""

    def __init__(self, samples=None):
        self.samples = list(samples or [])

    def push(self, gas, temperature=None, humidity=None):
        self.samples.append(SensorSample(gas_level=gas, temperature=temperature, humidity=humidity))

    def fail(self):
        self.samples.append(None)

    def read(self):
        sample = self.samples.pop(0)
        if sample is None:
            raise SensorReadError("sensor timed out")
        return sample


class RecordingObserver(Observer):
    name = "recording"

    def __init__(self):
        self.states: List[MirroredState] = []
        self.alerts: List[Tuple[AlertLevel, str]] = []

    def on_state_updated(self, state):
        self.states.append(state)

    def on_alert(self, level, message):
        self.alerts.append((level, message))


class ExplodingObserver(Observer):
    name = "exploding"

    def on_state_updated(self, state):
        raise RuntimeError("dashboard offline")

    def on_alert(self, level, message):
        raise RuntimeError("notification channel down")


class RecordingScheduler:
    def __init__(self):
        self.delays: List[float] = []

    def __call__(self, delay):
        self.delays.append(delay)


@pytest.fixture
def broker():
    return FakeBroker()


@pytest.fixture
def thresholds():
    return Thresholds(gas_warning=300, gas_critical=500, temp_high=40, humid_high=80)


@pytest.fixture
def sensor_config(thresholds):
    return SensorNodeConfig(
        node_id="sensor-1",
        topic_base=TOPIC_BASE,
        initial_relay=RelayState.ON,
        thresholds=thresholds,
        mqtt=MQTTConfig(client_id="sensor-1"),
        backoff=BackoffPolicy(mode="exponential", initial=1.0, maximum=8.0),
    )


@pytest.fixture
def supervisor_config():
    return SupervisorConfig(
        node_id="supervisor",
        sensor_node="sensor-1",
        topic_base=TOPIC_BASE,
        stale_after=30.0,
        mqtt=MQTTConfig(client_id="supervisor"),
        backoff=BackoffPolicy(mode="fixed", initial=2.0, maximum=2.0),
    )


@pytest.fixture
def sensor_transport(broker):
    return FakeTransport(broker)


@pytest.fixture
def supervisor_transport(broker):
    return FakeTransport(broker)


@pytest.fixture
def source():
    return ScriptedSource()


@pytest.fixture
def relay():
    return SimulatedRelay()


@pytest.fixture
def recorder():
    return RecordingObserver()


@pytest.fixture
def sensing_node(sensor_config, sensor_transport, source, relay):
    node = SensingNode(sensor_config, sensor_transport, source, relay)
    node._schedule_connect = RecordingScheduler()
    node.connection._schedule_retry = node._schedule_connect
    return node


@pytest.fixture
def supervisor_node(supervisor_config, supervisor_transport, recorder):
    node = SupervisorNode(supervisor_config, supervisor_transport, [recorder])
    node._schedule_connect = RecordingScheduler()
    node.connection._schedule_retry = node._schedule_connect
    return node
