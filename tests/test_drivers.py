"""Tests for sensor sources and relay outputs."""

import random
from unittest.mock import AsyncMock, MagicMock

import pytest

from gasguard.sensor_node.outputs import SimulatedRelay, create_output
from gasguard.sensor_node.outputs.kasa import KasaRelay
from gasguard.sensor_node.sources import SimulatedSensorSource, create_source
from gasguard.shared.models import RelayState


def test_create_source_and_output():
    assert isinstance(create_source({"driver": "simulated"}), SimulatedSensorSource)
    assert isinstance(create_output({}), SimulatedRelay)
    assert isinstance(create_output({"driver": "kasa", "host": "10.0.0.5"}), KasaRelay)

    with pytest.raises(ValueError):
        create_source({"driver": "mq2-adc"})
    with pytest.raises(ValueError):
        create_output({"driver": "gpio"})


def test_simulated_source_stays_near_base():
    source = SimulatedSensorSource({"gas": 150, "dropout_rate": 0.0}, rng=random.Random(7))

    samples = [source.read() for _ in range(200)]

    assert all(isinstance(s.gas_level, int) and s.gas_level >= 0 for s in samples)
    assert all(s.temperature is not None and s.humidity is not None for s in samples)
    assert max(s.gas_level for s in samples) < 300


def test_simulated_source_dropout_and_spikes():
    source = SimulatedSensorSource(
        {"dropout_rate": 1.0, "gas_spike_rate": 1.0}, rng=random.Random(1)
    )

    sample = source.read()

    assert sample.temperature is None
    assert sample.humidity is None
    assert sample.gas_level > 300


@pytest.mark.asyncio
async def test_simulated_relay_records_writes():
    relay = SimulatedRelay()

    assert await relay.set_state(RelayState.OFF)
    assert await relay.set_state(RelayState.ON)

    assert relay.state == RelayState.ON
    assert relay.writes == [RelayState.OFF, RelayState.ON]


def test_kasa_relay_requires_host_or_alias():
    with pytest.raises(ValueError):
        KasaRelay({"driver": "kasa"})


def make_plug(is_on):
    plug = MagicMock()
    plug.alias = "boiler"
    plug.host = "10.0.0.5"
    plug.is_on = is_on
    plug.update = AsyncMock()
    plug.disconnect = AsyncMock()

    async def turn_on():
        plug.is_on = True

    async def turn_off():
        plug.is_on = False

    plug.turn_on = AsyncMock(side_effect=turn_on)
    plug.turn_off = AsyncMock(side_effect=turn_off)
    return plug


@pytest.mark.asyncio
async def test_kasa_relay_switches_plug(monkeypatch):
    plug = make_plug(is_on=True)
    monkeypatch.setattr("kasa.Discover.discover_single", AsyncMock(return_value=plug))
    relay = KasaRelay({"host": "10.0.0.5"})

    assert await relay.set_state(RelayState.OFF)
    assert await relay.set_state(RelayState.OFF)

    plug.turn_off.assert_awaited_once()
    assert relay.switch_status is False

    await relay.close()
    plug.disconnect.assert_awaited_once()
    assert relay.device is None


@pytest.mark.asyncio
async def test_kasa_relay_switch_failure_forces_rediscovery(monkeypatch):
    plug = make_plug(is_on=False)
    plug.turn_on = AsyncMock(side_effect=OSError("host unreachable"))
    monkeypatch.setattr("kasa.Discover.discover_single", AsyncMock(return_value=plug))
    relay = KasaRelay({"host": "10.0.0.5"})

    assert not await relay.set_state(RelayState.ON)
    assert relay.device is None


@pytest.mark.asyncio
async def test_kasa_relay_unavailable(monkeypatch):
    monkeypatch.setattr("kasa.Discover.discover", AsyncMock(return_value={}))
    relay = KasaRelay({"alias": "boiler", "discovery_attempts": 2, "retry_delay": 0})

    assert not await relay.set_state(RelayState.OFF)
