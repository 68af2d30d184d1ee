import asyncio
import logging
import time
from typing import Optional

import kasa

from gasguard.shared.models import RelayState
from .base import RelayOutput

logger = logging.getLogger(__name__)


class KasaRelay(RelayOutput):
    """A Kasa smart plug used as the switched output.

    The plug is found by host when one is configured, otherwise by alias
    through network discovery.
    """

    def __init__(self, config: dict):
        self.host: Optional[str] = config.get('host')
        self.alias: Optional[str] = config.get('alias')
        if not self.host and not self.alias:
            raise ValueError("Kasa relay needs a 'host' or an 'alias'")
        self.discovery_attempts = int(config.get('discovery_attempts', 3))
        self.retry_delay = float(config.get('retry_delay', 5.0))
        self.device = None
        self.switch_status: Optional[bool] = None
        self.time_updated_ns = 0

    async def get_device(self) -> bool:
        """Discover and connect to the plug"""
        for attempt in range(1, self.discovery_attempts + 1):
            try:
                if self.host:
                    self.device = await kasa.Discover.discover_single(self.host)
                else:
                    logger.info(f"Discovering Kasa devices, looking for {self.alias}")
                    devices = await kasa.Discover.discover()
                    self.device = next(
                        (dev for dev in devices.values() if dev.alias == self.alias), None
                    )
                if self.device is not None:
                    await self.update()
                    logger.info(f"Found Kasa relay {self.device.alias} at {self.device.host}")
                    return True
            except Exception as e:
                logger.warning(f"Kasa discovery attempt {attempt} failed: {e}")

            logger.warning(f"Kasa relay not found, retrying in {self.retry_delay}s")
            await asyncio.sleep(self.retry_delay)
        return False

    async def update(self) -> bool:
        """Refresh the plug's on/off status"""
        try:
            await self.device.update()
            self.time_updated_ns = time.time_ns()
            self.switch_status = self.device.is_on
            return True
        except Exception as e:
            logger.error(f"Failed to update Kasa relay: {e}")
            return False

    async def set_state(self, state: RelayState) -> bool:
        if self.device is None and not await self.get_device():
            logger.error(f"Kasa relay unavailable, cannot switch {state.value}")
            return False

        want_on = state == RelayState.ON
        if self.switch_status == want_on:
            return True

        try:
            logger.info(f"Switching Kasa relay {state.value}")
            if want_on:
                await self.device.turn_on()
            else:
                await self.device.turn_off()
        except Exception as e:
            logger.error(f"Failed to switch Kasa relay {state.value}: {e}")
            # Force rediscovery next time
            self.device = None
            self.switch_status = None
            return False

        await self.update()
        return self.switch_status == want_on

    async def close(self) -> None:
        if self.device is not None:
            try:
                await self.device.disconnect()
            except Exception as e:
                logger.debug(f"Error closing Kasa connection: {e}")
            self.device = None
