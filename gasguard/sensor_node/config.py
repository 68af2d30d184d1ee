"""Configuration for the sensing node."""

import os
from dataclasses import dataclass, field
from typing import Optional

from gasguard.shared.config import get_config_path, get_log_level, load_yaml_config
from gasguard.shared.connection import BackoffPolicy
from gasguard.shared.exceptions import ConfigError
from gasguard.shared.models import RelayState
from gasguard.shared.mqtt import MQTTConfig, TopicSet

from .thresholds import Thresholds


@dataclass
class SensorNodeConfig:
    """Configuration for one sensing node."""

    node_id: str = "sensor-1"
    topic_base: str = "gasguard/sensor-1"

    # Periods in seconds
    sample_interval: float = 2.0
    data_interval: float = 10.0
    status_interval: float = 60.0

    initial_relay: RelayState = RelayState.OFF
    thresholds: Thresholds = field(default_factory=Thresholds)

    mqtt: MQTTConfig = field(default_factory=MQTTConfig)
    backoff: BackoffPolicy = field(default_factory=BackoffPolicy)

    # Driver settings, passed through to the source/output factories
    sensor: dict = field(default_factory=lambda: {"driver": "simulated"})
    relay: dict = field(default_factory=lambda: {"driver": "simulated"})

    log_level: str = "INFO"
    log_file: Optional[str] = None

    @property
    def topics(self) -> TopicSet:
        return TopicSet(self.topic_base)

    @classmethod
    def from_dict(cls, data: dict) -> "SensorNodeConfig":
        """Create config from dictionary."""
        node_id = os.getenv("GASGUARD_NODE_ID") or data.get("node_id", "sensor-1")

        mqtt_data = dict(data.get("mqtt", {}))
        mqtt_data.setdefault("client_id", node_id)

        initial_relay = str(data.get("initial_relay", "OFF")).upper()
        try:
            relay_state = RelayState(initial_relay)
        except ValueError as e:
            raise ConfigError(f"initial_relay must be ON or OFF, got {initial_relay!r}") from e

        config = cls(
            node_id=node_id,
            topic_base=data.get("topic_base", f"gasguard/{node_id}"),
            sample_interval=data.get("sample_interval", 2.0),
            data_interval=data.get("data_interval", 10.0),
            status_interval=data.get("status_interval", 60.0),
            initial_relay=relay_state,
            thresholds=Thresholds.from_dict(data.get("thresholds", {})),
            mqtt=MQTTConfig.from_dict(mqtt_data),
            backoff=BackoffPolicy.from_dict(data.get("backoff", {})),
            sensor=data.get("sensor", {"driver": "simulated"}),
            relay=data.get("relay", {"driver": "simulated"}),
            log_level=get_log_level(data),
            log_file=data.get("log_file"),
        )
        for name in ("sample_interval", "data_interval", "status_interval"):
            if getattr(config, name) <= 0:
                raise ConfigError(f"{name} must be positive")
        return config


def load_config(config_path: Optional[str] = None) -> SensorNodeConfig:
    """Load sensing node configuration.

    Args:
        config_path: Path to YAML config file. If not provided, uses
            SENSOR_NODE_CONFIG, then config/sensor-node[-{env}].yaml.
    """
    if config_path is None:
        config_path = os.environ.get("SENSOR_NODE_CONFIG")
    if config_path is None:
        config_path = get_config_path("sensor-node")

    return SensorNodeConfig.from_dict(load_yaml_config(config_path))
