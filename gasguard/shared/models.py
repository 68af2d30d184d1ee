"""Core data models shared by the sensing and supervisory nodes."""

import time
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, Optional


class AlertLevel(IntEnum):
    """Hazard severity, ordered so that CRITICAL > WARNING > NORMAL."""
    NORMAL = 0
    WARNING = 1
    CRITICAL = 2

    @classmethod
    def from_wire(cls, value: str) -> "AlertLevel":
        """Exact upper-case name only. Raises KeyError otherwise."""
        if not isinstance(value, str) or value not in cls.__members__:
            raise KeyError(value)
        return cls[value]


class RelayState(Enum):
    """State of the controlled output."""
    ON = "ON"
    OFF = "OFF"


class CommandOrigin(Enum):
    """Who asked for a relay change."""
    LOCAL_SAFETY = "local_safety"
    REMOTE = "remote"


@dataclass(frozen=True)
class SensorSample:
    """A single acquisition from the sensor source.

    Temperature and humidity are None when the sensor did not report them.
    """
    gas_level: int
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    captured_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class RelayCommand:
    """Request to drive the relay to a state."""
    action: RelayState
    origin: CommandOrigin


@dataclass(frozen=True)
class RelayTransition:
    """Outcome of an accepted relay command."""
    previous: RelayState
    current: RelayState
    origin: CommandOrigin

    @property
    def changed(self) -> bool:
        return self.previous != self.current


@dataclass
class MirroredState:
    """Supervisory copy of the sensing node's last known state.

    Only the state aggregator writes this; everyone else gets copies.
    """
    last_sample: Optional[SensorSample] = None
    last_alert: AlertLevel = AlertLevel.NORMAL
    last_relay: Optional[RelayState] = None
    last_updated_at: Optional[float] = None
    stale: bool = False
    malformed_count: int = 0

    def age(self, now: Optional[float] = None) -> Optional[float]:
        """Seconds since the last accepted update, or None if never updated."""
        if self.last_updated_at is None:
            return None
        return (now if now is not None else time.time()) - self.last_updated_at

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON observers."""
        sample = self.last_sample
        return {
            "temperature": sample.temperature if sample else None,
            "humidity": sample.humidity if sample else None,
            "gas": sample.gas_level if sample else None,
            "captured_at": sample.captured_at if sample else None,
            "alert": self.last_alert.name,
            "relay": self.last_relay.value if self.last_relay else None,
            "last_updated_at": self.last_updated_at,
            "stale": self.stale,
            "malformed_count": self.malformed_count,
        }
