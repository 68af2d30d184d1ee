"""Serialized event loop shared by both nodes.

Transport callbacks, periodic timers and reconnect backoff never touch node
state themselves. They post events, and a single consumer task hands each
event to the node's handler one at a time.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional

logger = logging.getLogger(__name__)


class EventKind(Enum):
    MESSAGE = "message"
    TICK = "tick"
    CONNECT = "connect"
    TRANSPORT_LOST = "transport_lost"
    STOP = "stop"


@dataclass(frozen=True)
class Event:
    kind: EventKind
    topic: Optional[str] = None
    payload: Optional[bytes] = None
    name: Optional[str] = None  # tick name or disconnect reason


EventHandler = Callable[[Event], Awaitable[None]]


class NodeRuntime:
    """Queue of events drained by one task."""

    def __init__(self, name: str):
        self.name = name
        self._queue: Optional[asyncio.Queue] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._timers: List[asyncio.Task] = []
        self._delayed: List[asyncio.TimerHandle] = []
        self._running = False

    def _ensure_started(self) -> None:
        if self._queue is None:
            self._loop = asyncio.get_running_loop()
            self._queue = asyncio.Queue()

    def post(self, event: Event) -> None:
        """Enqueue an event from inside the event loop."""
        self._ensure_started()
        self._queue.put_nowait(event)

    def post_threadsafe(self, event: Event) -> None:
        """Enqueue an event from any thread, e.g. a transport callback."""
        if self._loop is None or self._loop.is_closed():
            logger.debug(f"[{self.name}] Dropping {event.kind.value} event, runtime not running")
            return
        self._loop.call_soon_threadsafe(self._queue.put_nowait, event)

    def post_later(self, delay: float, event: Event) -> None:
        """Enqueue an event after `delay` seconds."""
        self._ensure_started()
        handle = self._loop.call_later(delay, self._queue.put_nowait, event)
        self._delayed.append(handle)
        self._delayed = [h for h in self._delayed if not h.cancelled()]

    def every(self, interval: float, name: str) -> None:
        """Post a TICK event named `name` every `interval` seconds."""
        self._ensure_started()

        async def _tick():
            while True:
                await asyncio.sleep(interval)
                self._queue.put_nowait(Event(EventKind.TICK, name=name))

        self._timers.append(asyncio.create_task(_tick(), name=f"{self.name}-{name}"))

    def stop(self) -> None:
        """Ask the consumer to finish after events already queued."""
        if self._queue is not None:
            self._queue.put_nowait(Event(EventKind.STOP))

    async def run(self, handler: EventHandler) -> None:
        """Consume events until STOP, one handler call at a time.

        A failing handler is logged and the loop carries on; nothing a single
        event does may take the node down.
        """
        self._ensure_started()
        self._running = True
        logger.info(f"[{self.name}] Event loop started")
        try:
            while True:
                event = await self._queue.get()
                if event.kind == EventKind.STOP:
                    break
                try:
                    await handler(event)
                except Exception:
                    logger.exception(f"[{self.name}] Error handling {event.kind.value} event")
        finally:
            self._running = False
            for task in self._timers:
                task.cancel()
            for handle in self._delayed:
                handle.cancel()
            self._timers.clear()
            self._delayed.clear()
            logger.info(f"[{self.name}] Event loop stopped")

    @property
    def running(self) -> bool:
        return self._running

    @property
    def pending(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0
