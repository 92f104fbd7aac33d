from __future__ import annotations

from typing import TYPE_CHECKING

from lifecycle.shutdown_protocol import IShutdownHandler
from utils.logger import get_logger, LogCategory

if TYPE_CHECKING:
    from controllers.control_loop import ControlLoop

log = get_logger().for_category(LogCategory.SHUTDOWN)


class FanControllerShutdownHandler(IShutdownHandler):
    """
    Shutdown handler for the fan control loop.

    Stops periodic control, drives the fan output LOW and releases the
    GPIO pin before any generic task cancellation runs.

    Priority: 100 (shutdown first)
    """

    def __init__(self, control_loop: "ControlLoop"):
        self.control_loop = control_loop

    @property
    def shutdown_priority(self) -> int:
        return 100

    async def shutdown(self) -> None:
        log.info("Stopping fan controller...")
        await self.control_loop.stop()
        log.info("Fan controller stopped", fan_level=f"{self.control_loop.status().current_level}%")
