"""Read-only consumers of the mirrored state."""

import logging
from abc import ABC

from gasguard.shared.models import AlertLevel, MirroredState

logger = logging.getLogger(__name__)


class Observer(ABC):
    """Base class for dashboards and notification channels.

    Callbacks run on the supervisor's event loop and must return quickly;
    anything slow belongs in the observer's own task or thread.
    """

    name = "observer"

    def on_state_updated(self, state: MirroredState) -> None:
        pass

    def on_alert(self, level: AlertLevel, message: str) -> None:
        pass

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass


class LoggingObserver(Observer):
    """Writes alerts and staleness changes to the log."""

    name = "log"

    def __init__(self):
        self._stale = False

    def on_state_updated(self, state: MirroredState) -> None:
        if state.stale != self._stale:
            self._stale = state.stale
            if state.stale:
                logger.warning("Mirrored state is stale")
            else:
                logger.info("Mirrored state refreshed")

    def on_alert(self, level: AlertLevel, message: str) -> None:
        if level == AlertLevel.CRITICAL:
            logger.critical(message)
        else:
            logger.warning(message)
