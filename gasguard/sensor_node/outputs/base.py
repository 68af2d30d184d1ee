"""Base class for relay output drivers."""

from abc import ABC, abstractmethod

from gasguard.shared.models import RelayState


class RelayOutput(ABC):
    """Physical side of the relay. Only the sensing node writes to it."""

    @abstractmethod
    async def set_state(self, state: RelayState) -> bool:
        """Drive the output. Returns False if the hardware did not follow."""
        pass

    async def close(self) -> None:
        pass
