"""Sensor sources for the sensing node."""

from .base import SensorSource
from .simulated import SimulatedSensorSource

SOURCE_TYPES = {
    "simulated": SimulatedSensorSource,
}


def create_source(config: dict) -> SensorSource:
    """Build the sensor source named by config['driver']."""
    driver = config.get("driver", "simulated")
    if driver not in SOURCE_TYPES:
        raise ValueError(f"Unsupported sensor driver: {driver}")
    return SOURCE_TYPES[driver](config)


__all__ = [
    "SensorSource",
    "SimulatedSensorSource",
    "create_source",
]
