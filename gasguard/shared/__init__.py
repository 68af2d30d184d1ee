"""Shared utilities for gasguard nodes."""

from .config import get_config_path, load_yaml_config
from .connection import BackoffPolicy, ConnectionManager, ConnectionState
from .exceptions import (
    ConfigError,
    GasGuardError,
    MalformedMessageError,
    RejectedCommandError,
    SensorReadError,
    TransportError,
)
from .logging import setup_logging
from .models import (
    AlertLevel,
    CommandOrigin,
    MirroredState,
    RelayCommand,
    RelayState,
    RelayTransition,
    SensorSample,
)
from .mqtt import MQTTConfig, TopicSet
from .runtime import Event, EventKind, NodeRuntime
from .transport import PahoTransport, Transport

__all__ = [
    "get_config_path",
    "load_yaml_config",
    "BackoffPolicy",
    "ConnectionManager",
    "ConnectionState",
    "ConfigError",
    "GasGuardError",
    "MalformedMessageError",
    "RejectedCommandError",
    "SensorReadError",
    "TransportError",
    "setup_logging",
    "AlertLevel",
    "CommandOrigin",
    "MirroredState",
    "RelayCommand",
    "RelayState",
    "RelayTransition",
    "SensorSample",
    "MQTTConfig",
    "TopicSet",
    "Event",
    "EventKind",
    "NodeRuntime",
    "PahoTransport",
    "Transport",
]
