"""Tests for the sensing node's cycle, control handling and reporting."""

import json
from dataclasses import replace

import pytest

from conftest import TOPIC_BASE, FakeTransport, deliver

from gasguard.sensor_node.node import SensingNode, TICK_DATA, TICK_SAMPLE, TICK_STATUS
from gasguard.shared.models import AlertLevel, CommandOrigin, RelayState
from gasguard.shared.runtime import Event, EventKind

ALERT_TOPIC = f"{TOPIC_BASE}/alert"
STATUS_TOPIC = f"{TOPIC_BASE}/status"
DATA_TOPIC = f"{TOPIC_BASE}/data"
CONTROL_TOPIC = f"{TOPIC_BASE}/control"


async def connect(node):
    await node.handle(Event(EventKind.CONNECT))


def statuses(broker):
    return [json.loads(p)["relay"] for p in broker.messages_on(STATUS_TOPIC)]


@pytest.mark.asyncio
async def test_connect_subscribes_control_and_publishes_retained_status(sensing_node, sensor_transport, broker):
    await connect(sensing_node)

    assert sensor_transport.subscriptions == [CONTROL_TOPIC]
    assert broker.published[-1][0] == STATUS_TOPIC
    assert broker.published[-1][2] is True
    assert json.loads(broker.retained[STATUS_TOPIC])["relay"] == "ON"


@pytest.mark.asyncio
async def test_critical_cycle_latches_relay_off(sensing_node, source, relay, broker):
    await connect(sensing_node)
    source.push(gas=650, temperature=30.0, humidity=60.0)

    level = await sensing_node.run_cycle()

    assert level == AlertLevel.CRITICAL
    assert sensing_node.interlock.state == RelayState.OFF
    assert sensing_node.interlock.latched
    assert sensing_node.interlock.origin == CommandOrigin.LOCAL_SAFETY
    assert relay.writes == [RelayState.OFF]
    assert statuses(broker) == ["ON", "OFF"]
    alerts = [json.loads(p) for p in broker.messages_on(ALERT_TOPIC)]
    assert [a["level"] for a in alerts] == ["CRITICAL"]
    assert alerts[0]["node"] == "sensor-1"


@pytest.mark.asyncio
async def test_alert_repeated_every_cycle_while_not_normal(sensing_node, source, broker):
    await connect(sensing_node)
    for gas in (350, 360, 600, 700, 100):
        source.push(gas=gas)

    levels = [await sensing_node.run_cycle() for _ in range(5)]

    assert levels == [
        AlertLevel.WARNING,
        AlertLevel.WARNING,
        AlertLevel.CRITICAL,
        AlertLevel.CRITICAL,
        AlertLevel.NORMAL,
    ]
    alerts = [json.loads(p)["level"] for p in broker.messages_on(ALERT_TOPIC)]
    assert alerts == ["WARNING", "WARNING", "CRITICAL", "CRITICAL"]


@pytest.mark.asyncio
async def test_repeated_critical_does_not_rewrite_relay(sensing_node, source, relay, broker):
    await connect(sensing_node)
    source.push(gas=600)
    source.push(gas=610)

    await sensing_node.run_cycle()
    await sensing_node.run_cycle()

    assert relay.writes == [RelayState.OFF]
    assert statuses(broker) == ["ON", "OFF"]


@pytest.mark.asyncio
async def test_remote_on_rejected_while_latched(sensing_node, sensor_transport, supervisor_transport, source, relay):
    await connect(sensing_node)
    source.push(gas=600)
    await sensing_node.run_cycle()

    supervisor_transport.connect("supervisor")
    supervisor_transport.publish(CONTROL_TOPIC, "RELAY_ON")
    await deliver(sensing_node, sensor_transport)

    assert sensing_node.interlock.state == RelayState.OFF
    assert sensing_node.interlock.rejected_count == 1
    assert relay.writes == [RelayState.OFF]


@pytest.mark.asyncio
async def test_remote_on_accepted_after_hazard_clears(sensing_node, source, relay, broker):
    await connect(sensing_node)
    source.push(gas=600)
    source.push(gas=100)
    await sensing_node.run_cycle()
    await sensing_node.run_cycle()

    # Clearing the latch does not restore the relay by itself
    assert sensing_node.interlock.state == RelayState.OFF
    assert not sensing_node.interlock.latched

    await sensing_node.on_control_message(CONTROL_TOPIC, b"RELAY_ON")

    assert sensing_node.interlock.state == RelayState.ON
    assert sensing_node.interlock.origin == CommandOrigin.REMOTE
    assert relay.writes == [RelayState.OFF, RelayState.ON]
    assert statuses(broker)[-1] == "ON"


@pytest.mark.asyncio
async def test_redundant_remote_command_still_acknowledged(sensing_node, relay, broker):
    await connect(sensing_node)
    await sensing_node.on_control_message(CONTROL_TOPIC, b"RELAY_ON")
    await sensing_node.on_control_message(CONTROL_TOPIC, b"RELAY_ON")

    # The first call syncs the output once, the second finds it in sync
    assert relay.writes == [RelayState.ON]
    assert statuses(broker) == ["ON", "ON", "ON"]


@pytest.mark.asyncio
async def test_malformed_control_message_is_counted(sensing_node, relay, broker):
    await connect(sensing_node)
    before = len(broker.published)

    await sensing_node.on_control_message(CONTROL_TOPIC, b"OPEN_VALVE")
    await sensing_node.on_control_message(CONTROL_TOPIC, b'{"action": "RELAY_OFF"}')

    assert sensing_node.malformed_count == 2
    assert sensing_node.interlock.state == RelayState.ON
    assert relay.writes == []
    assert len(broker.published) == before


@pytest.mark.asyncio
async def test_message_on_other_topic_ignored(sensing_node):
    await sensing_node.on_control_message(f"{TOPIC_BASE}/data", b"RELAY_OFF")

    assert sensing_node.interlock.state == RelayState.ON
    assert sensing_node.malformed_count == 0


@pytest.mark.asyncio
async def test_sensor_failure_skips_cycle_and_keeps_latch(sensing_node, source, broker):
    await connect(sensing_node)
    source.push(gas=600)
    source.fail()
    await sensing_node.run_cycle()
    alerts_before = len(broker.messages_on(ALERT_TOPIC))

    assert await sensing_node.run_cycle() is None

    assert sensing_node.read_failures == 1
    assert sensing_node.interlock.latched
    assert len(broker.messages_on(ALERT_TOPIC)) == alerts_before


@pytest.mark.asyncio
async def test_absent_readings_are_null_on_the_wire(sensing_node, source, broker):
    await connect(sensing_node)
    source.push(gas=120, temperature=None, humidity=45.0)

    await sensing_node.handle(Event(EventKind.TICK, name=TICK_SAMPLE))
    await sensing_node.handle(Event(EventKind.TICK, name=TICK_DATA))

    data = json.loads(broker.messages_on(DATA_TOPIC)[-1])
    assert data["type"] == "data"
    assert data["gas"] == 120
    assert data["temperature"] is None
    assert data["humidity"] == 45.0


@pytest.mark.asyncio
async def test_data_tick_without_sample_publishes_nothing(sensing_node, broker):
    await connect(sensing_node)

    await sensing_node.handle(Event(EventKind.TICK, name=TICK_DATA))

    assert broker.messages_on(DATA_TOPIC) == []


@pytest.mark.asyncio
async def test_status_tick_republishes_retained_status(sensing_node, broker):
    await connect(sensing_node)

    await sensing_node.handle(Event(EventKind.TICK, name=TICK_STATUS))

    assert statuses(broker) == ["ON", "ON"]
    status = json.loads(broker.retained[STATUS_TOPIC])
    assert status["type"] == "status"
    assert isinstance(status["uptime"], int)


@pytest.mark.asyncio
async def test_status_refresh_retries_unconfirmed_output(sensing_node, relay):
    calls = []

    async def flaky(state):
        calls.append(state)
        return len(calls) > 1

    relay.set_state = flaky
    await sensing_node.on_control_message(CONTROL_TOPIC, b"RELAY_OFF")
    await sensing_node.refresh_status()
    await sensing_node.refresh_status()

    assert calls == [RelayState.OFF, RelayState.OFF]


@pytest.mark.asyncio
async def test_interlock_runs_while_disconnected(sensing_node, sensor_transport, source, relay):
    await connect(sensing_node)
    sensor_transport.drop()
    await sensing_node.handle(Event(EventKind.TRANSPORT_LOST, name="connection lost"))
    source.push(gas=900)

    assert await sensing_node.run_cycle() == AlertLevel.CRITICAL

    assert relay.writes == [RelayState.OFF]
    assert sensing_node.emitter.dropped >= 2
    assert sensing_node._schedule_connect.delays == [1.0]


@pytest.mark.asyncio
async def test_reconnect_resubscribes_and_restates_relay(sensing_node, sensor_transport, source, broker):
    await connect(sensing_node)
    sensor_transport.drop()
    await sensing_node.handle(Event(EventKind.TRANSPORT_LOST, name="connection lost"))
    source.push(gas=900)
    await sensing_node.run_cycle()

    await connect(sensing_node)

    assert sensor_transport.subscriptions == [CONTROL_TOPIC]
    assert json.loads(broker.retained[STATUS_TOPIC])["relay"] == "OFF"


@pytest.mark.asyncio
async def test_independent_nodes_use_separate_topics(broker, sensor_config, source, relay):
    other = SensingNode(replace(sensor_config, node_id="sensor-2", topic_base="gasguard/sensor-2"),
                        FakeTransport(broker), source, relay)
    await other.handle(Event(EventKind.CONNECT))

    assert "gasguard/sensor-2/status" in broker.retained
    assert STATUS_TOPIC not in broker.retained
