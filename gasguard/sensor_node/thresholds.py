"""Threshold evaluator: maps one sample to an alert level."""

from dataclasses import dataclass

from gasguard.shared.exceptions import ConfigError
from gasguard.shared.models import AlertLevel, SensorSample


@dataclass(frozen=True)
class Thresholds:
    """Alarm limits. A reading must exceed a limit, not merely reach it."""
    gas_warning: int = 300
    gas_critical: int = 500
    temp_high: float = 40.0
    humid_high: float = 80.0

    def __post_init__(self):
        if self.gas_warning >= self.gas_critical:
            raise ConfigError(
                f"gas_warning ({self.gas_warning}) must be below gas_critical ({self.gas_critical})"
            )

    @classmethod
    def from_dict(cls, data: dict) -> "Thresholds":
        return cls(
            gas_warning=data.get("gas_warning", 300),
            gas_critical=data.get("gas_critical", 500),
            temp_high=data.get("temp_high", 40.0),
            humid_high=data.get("humid_high", 80.0),
        )


def classify(sample: SensorSample, thresholds: Thresholds) -> AlertLevel:
    """Classify a single sample, with no memory of earlier ones.

    CRITICAL is checked before WARNING. Absent temperature or humidity
    never counts as exceeding its limit.
    """
    if sample.gas_level > thresholds.gas_critical:
        return AlertLevel.CRITICAL
    if sample.temperature is not None and sample.temperature > thresholds.temp_high:
        return AlertLevel.CRITICAL
    if sample.humidity is not None and sample.humidity > thresholds.humid_high:
        return AlertLevel.CRITICAL
    if sample.gas_level > thresholds.gas_warning:
        return AlertLevel.WARNING
    return AlertLevel.NORMAL
