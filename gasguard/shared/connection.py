"""Connection lifecycle: connect, resubscribe, back off and retry forever."""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Tuple

from .exceptions import ConfigError, TransportError
from .transport import Transport

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass
class BackoffPolicy:
    """Delay between reconnect attempts.

    `exponential` doubles (by `multiplier`) from `initial` up to `maximum`;
    `fixed` always waits `initial`.
    """
    mode: str = "exponential"
    initial: float = 1.0
    maximum: float = 60.0
    multiplier: float = 2.0

    def __post_init__(self):
        if self.mode not in ("exponential", "fixed"):
            raise ConfigError(f"Unknown backoff mode: {self.mode}")
        if self.initial <= 0 or self.maximum < self.initial:
            raise ConfigError(f"Invalid backoff bounds: initial={self.initial}, maximum={self.maximum}")

    @classmethod
    def from_dict(cls, data: dict) -> "BackoffPolicy":
        return cls(
            mode=data.get("mode", "exponential"),
            initial=data.get("initial", 1.0),
            maximum=data.get("maximum", 60.0),
            multiplier=data.get("multiplier", 2.0),
        )

    def delay(self, attempt: int) -> float:
        """Delay before retry number `attempt` (1-based)."""
        if self.mode == "fixed":
            return self.initial
        return min(self.initial * (self.multiplier ** (attempt - 1)), self.maximum)


class ConnectionManager:
    """Owns a node's ConnectionState and its backoff counter.

    Must only be driven from the node's event loop. Retries are scheduled
    through `schedule_retry`, which should post a CONNECT event after the
    given delay rather than call connect() itself.
    """

    def __init__(
        self,
        transport: Transport,
        identity: str,
        topics: List[str],
        backoff: BackoffPolicy,
        schedule_retry: Callable[[float], None],
        credentials: Optional[Tuple[str, Optional[str]]] = None,
        subscribe_attempts: int = 3,
    ):
        self.transport = transport
        self.identity = identity
        self.topics = list(topics)
        self.backoff = backoff
        self.credentials = credentials
        self.subscribe_attempts = subscribe_attempts
        self._schedule_retry = schedule_retry

        self.state = ConnectionState.DISCONNECTED
        self.failures = 0
        self._retry_pending = False
        self.subscribed: List[str] = []

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    async def connect(self) -> bool:
        """Attempt one handshake. Returns True once connected and subscribed."""
        self._retry_pending = False
        if self.state != ConnectionState.DISCONNECTED:
            logger.debug(f"Ignoring connect while {self.state.value}")
            return self.is_connected

        self.state = ConnectionState.CONNECTING
        try:
            await asyncio.to_thread(self.transport.connect, self.identity, self.credentials)
        except TransportError as e:
            logger.warning(f"Connection attempt {self.failures + 1} failed: {e}")
            self.on_transport_error(str(e))
            return False

        return await self.on_connected()

    async def on_connected(self) -> bool:
        """Mark connected, reset backoff and restore the role's subscriptions."""
        self.state = ConnectionState.CONNECTED
        if self.failures:
            logger.info(f"Reconnected after {self.failures} failed attempt(s)")
        self.failures = 0

        try:
            await self.resubscribe()
        except TransportError as e:
            logger.error(f"Resubscription failed, dropping connection: {e}")
            await asyncio.to_thread(self.transport.disconnect)
            self.on_transport_error(str(e))
            return False
        return True

    async def resubscribe(self) -> None:
        """Subscribe to every required topic, retrying each a few times.

        Raises:
            TransportError: If any topic could not be confirmed.
        """
        self.subscribed = []
        for topic in self.topics:
            for attempt in range(1, self.subscribe_attempts + 1):
                try:
                    await asyncio.to_thread(self.transport.subscribe, topic)
                    self.subscribed.append(topic)
                    break
                except TransportError as e:
                    logger.warning(f"Subscribe to {topic} failed (attempt {attempt}/{self.subscribe_attempts}): {e}")
            else:
                raise TransportError(f"Could not subscribe to {topic}")

    def on_transport_error(self, reason: str = "") -> None:
        """Drop to DISCONNECTED and schedule the next attempt."""
        self.state = ConnectionState.DISCONNECTED
        self.subscribed = []
        if self._retry_pending:
            logger.debug(f"Retry already scheduled, ignoring transport error: {reason}")
            return

        self.failures += 1
        delay = self.backoff.delay(self.failures)
        self._retry_pending = True
        logger.info(f"Transport down ({reason or 'unknown'}), reconnecting in {delay:.1f}s")
        self._schedule_retry(delay)
