from __future__ import annotations

from hardware.gpio.gpio_manager_interface import IGPIOManager
from lifecycle.shutdown_protocol import IShutdownHandler
from utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.SHUTDOWN)


class GPIOShutdownHandler(IShutdownHandler):
    """
    Shutdown handler for GPIO hardware.

    Cleans up every pin still registered. Runs after the fan controller
    has driven its output LOW and released its own pin.

    Priority: 10 (shutdown last)
    """

    def __init__(self, gpio_manager: IGPIOManager):
        self.gpio_manager = gpio_manager

    @property
    def shutdown_priority(self) -> int:
        """GPIO cleanup has low priority (happens last)."""
        return 10

    async def shutdown(self) -> None:
        """Clean up GPIO."""
        leftover = self.gpio_manager.get_registry()
        if leftover:
            log.warn("GPIO pins still registered at shutdown", pins=sorted(leftover))

        log.info("Cleaning up GPIO...")
        self.gpio_manager.cleanup()
        log.debug("GPIO cleaned up")
