"""HTTP observers: chat-bot notifications and cloud widget sync."""

import asyncio
import logging
import time
from abc import abstractmethod
from typing import Any, Optional

import aiohttp

from gasguard.shared.models import AlertLevel, MirroredState

from .observers import Observer

logger = logging.getLogger(__name__)


class HttpObserver(Observer):
    """Observer that hands work to its own worker task through a bounded queue.

    When the queue is full new items are dropped, so a slow or dead
    endpoint can never back up the supervisor.
    """

    name = "http"

    def __init__(self, queue_size: int = 16, timeout: float = 10.0):
        self.queue_size = queue_size
        self.timeout = timeout
        self.dropped = 0
        self.sent = 0
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._session: Optional[aiohttp.ClientSession] = None

    async def start(self) -> None:
        self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
        self._queue = asyncio.Queue(maxsize=self.queue_size)
        self._worker = asyncio.create_task(self._run(), name=f"observer-{self.name}")

    async def stop(self) -> None:
        if self._worker:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        if self._session:
            await self._session.close()
            self._session = None

    def _enqueue(self, item: Any) -> None:
        if self._queue is None:
            logger.debug(f"{self.name} not started, dropping item")
            self.dropped += 1
            return
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(f"{self.name} queue full, dropping item ({self.dropped} dropped)")

    async def _run(self) -> None:
        while True:
            item = await self._queue.get()
            try:
                await self._send(item)
                self.sent += 1
            except Exception as e:
                logger.error(f"{self.name} delivery failed: {e}")

    @abstractmethod
    async def _send(self, item: Any) -> None:
        pass


class TelegramNotifier(HttpObserver):
    """Sends alert text to a Telegram chat through the Bot API."""

    name = "telegram"
    API_URL = "https://api.telegram.org/bot{token}/sendMessage"

    def __init__(
        self,
        token: str,
        chat_id: str,
        min_level: AlertLevel = AlertLevel.WARNING,
        queue_size: int = 16,
        timeout: float = 10.0,
    ):
        super().__init__(queue_size=queue_size, timeout=timeout)
        self.url = self.API_URL.format(token=token)
        self.chat_id = chat_id
        self.min_level = min_level

    def on_alert(self, level: AlertLevel, message: str) -> None:
        if level < self.min_level:
            return
        self._enqueue(message)

    async def _send(self, item: str) -> None:
        async with self._session.post(self.url, json={"chat_id": self.chat_id, "text": item}) as response:
            if response.status != 200:
                body = await response.text()
                raise aiohttp.ClientResponseError(
                    response.request_info,
                    response.history,
                    status=response.status,
                    message=body[:200],
                )
        logger.debug(f"Sent Telegram notification to {self.chat_id}")


class WebhookSync(HttpObserver):
    """POSTs the mirrored state as JSON to a dashboard/widget endpoint.

    Updates closer together than `min_interval` are skipped, except that a
    staleness or alert change is always sent.
    """

    name = "webhook"

    def __init__(
        self,
        url: str,
        min_interval: float = 5.0,
        queue_size: int = 4,
        timeout: float = 10.0,
    ):
        super().__init__(queue_size=queue_size, timeout=timeout)
        self.url = url
        self.min_interval = min_interval
        self._last_sent_at = 0.0
        self._last_key = None

    def on_state_updated(self, state: MirroredState) -> None:
        now = time.monotonic()
        key = (state.stale, state.last_alert, state.last_relay)
        if key == self._last_key and now - self._last_sent_at < self.min_interval:
            return
        self._last_key = key
        self._last_sent_at = now
        self._enqueue(state.to_dict())

    async def _send(self, item: dict) -> None:
        async with self._session.post(self.url, json=item) as response:
            response.raise_for_status()
