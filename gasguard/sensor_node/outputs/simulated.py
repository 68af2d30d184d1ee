import logging
from typing import List, Optional

from gasguard.shared.models import RelayState
from .base import RelayOutput

logger = logging.getLogger(__name__)


class SimulatedRelay(RelayOutput):
    """In-memory relay, records every write."""

    def __init__(self):
        self.state: Optional[RelayState] = None
        self.writes: List[RelayState] = []

    async def set_state(self, state: RelayState) -> bool:
        logger.info(f"Simulated relay -> {state.value}")
        self.state = state
        self.writes.append(state)
        return True
