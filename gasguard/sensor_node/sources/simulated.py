import logging
import random
import time
from typing import Optional

from gasguard.shared.models import SensorSample
from .base import SensorSource

logger = logging.getLogger(__name__)


class SimulatedSensorSource(SensorSource):
    def __init__(self, config: dict, rng: Optional[random.Random] = None):
        """
        config should be a dict like:
        {
            'temperature': 24.0,     # base values the random walk reverts to
            'humidity': 50.0,
            'gas': 150,
            'dropout_rate': 0.02,    # chance a temperature/humidity read is absent
            'gas_spike_rate': 0.0,   # chance of a gas spike to exercise alerts
        }
        """
        self.base_temperature = float(config.get('temperature', 24.0))
        self.base_humidity = float(config.get('humidity', 50.0))
        self.base_gas = float(config.get('gas', 150))
        self.dropout_rate = float(config.get('dropout_rate', 0.02))
        self.gas_spike_rate = float(config.get('gas_spike_rate', 0.0))
        self.rng = rng or random.Random()

        # Keep last values to avoid wild jumps
        self.last_values = {}
        logger.info("Initialized SimulatedSensorSource")

    def _walk(self, key: str, base_value: float, variation: float) -> float:
        """Random walk with mean reversion"""
        current = self.last_values.get(key, base_value)
        new_value = current + self.rng.uniform(-variation, variation)
        new_value = new_value * 0.9 + base_value * 0.1
        self.last_values[key] = new_value
        return new_value

    def _maybe_absent(self, value: float) -> Optional[float]:
        if self.rng.random() < self.dropout_rate:
            return None
        return round(value, 1)

    def read(self) -> SensorSample:
        temperature = self._walk('temperature', self.base_temperature, 0.5)
        humidity = self._walk('humidity', self.base_humidity, 2.0)
        gas = self._walk('gas', self.base_gas, 15.0)

        if self.rng.random() < self.gas_spike_rate:
            gas += self.rng.uniform(200, 600)
            logger.debug(f"Simulated gas spike: {gas:.0f}")

        return SensorSample(
            gas_level=max(0, int(gas)),
            temperature=self._maybe_absent(temperature),
            humidity=self._maybe_absent(humidity),
            captured_at=time.time(),
        )
