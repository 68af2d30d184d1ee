"""Base class for sensor sources."""

from abc import ABC, abstractmethod

from gasguard.shared.models import SensorSample


class SensorSource(ABC):
    """Produces environmental samples for the sensing node."""

    @abstractmethod
    def read(self) -> SensorSample:
        """Take one sample.

        Readings the hardware failed to deliver are None in the sample.
        Raises SensorReadError if nothing usable could be read.
        """
        pass

    def close(self) -> None:
        pass
