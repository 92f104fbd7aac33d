"""
main_asyncio.py - Application entry point for the fan controller
----------------------------------------------------------------

Responsible for:
- loading settings and configuring the logger
- wiring GPIO manager, temperature source and control loop
- starting the async control loop
- graceful shutdown on Ctrl+C, SIGTERM or a failed critical task
"""

import sys

# ---------------------------------------------------------------------------
# UTF-8 ENCODING FIX (important for Raspberry Pi)
# ---------------------------------------------------------------------------

# Set UTF-8 encoding for output BEFORE any logging (fixes °C and tree symbols)
if hasattr(sys.stdout, 'reconfigure') and sys.stdout.encoding != 'UTF-8':
    sys.stdout.reconfigure(encoding='utf-8')  # type: ignore
if hasattr(sys.stderr, 'reconfigure') and sys.stderr.encoding != 'UTF-8':
    sys.stderr.reconfigure(encoding='utf-8')  # type: ignore

import asyncio
import os

from utils.logger import get_logger, configure_logger
from models.enums import LogCategory
from models.errors import ResourceAcquisitionError
from runtime.runtime_info import RuntimeInfo
from hardware.gpio import create_gpio_manager
from controllers import ControlLoop
from managers import ConfigManager

# === Lifecycle Management ===
from lifecycle import ShutdownCoordinator, TaskRegistry
from lifecycle.handlers import (
    FanControllerShutdownHandler,
    GPIOShutdownHandler,
    TaskCancellationHandler,
)

log = get_logger().for_category(LogCategory.SYSTEM)

CONFIG_PATH = os.environ.get("FAN_CONTROLLER_CONFIG", "config/fan_controller.yaml")
FORCE_MOCK_GPIO = os.environ.get("FAN_CONTROLLER_MOCK_GPIO", "0") == "1"


# ---------------------------------------------------------------------------
# Application Entry
# ---------------------------------------------------------------------------

async def main() -> int:
    """Main async entry point (dependency injection and event loop startup)."""

    # ========================================================================
    # 1. CONFIGURATION
    # ========================================================================

    config_manager = ConfigManager(config_path=CONFIG_PATH)
    config = config_manager.load()

    min_level, use_colors = config_manager.log_settings()
    configure_logger(min_level, use_colors)

    log.info("Starting fan controller...", **RuntimeInfo.describe())

    # ========================================================================
    # 2. INFRASTRUCTURE
    # ========================================================================

    gpio_manager = create_gpio_manager(force_mock=FORCE_MOCK_GPIO)
    log.info(f"GPIO backend: {gpio_manager.__class__.__name__}")

    # ========================================================================
    # 3. CONTROL LOOP
    # ========================================================================

    control_loop = ControlLoop(config, gpio_manager)

    try:
        await control_loop.start()
    except ResourceAcquisitionError as e:
        log.error("Fan controller could not start", error=e.message, **e.details)
        gpio_manager.cleanup()
        return 1

    # ========================================================================
    # 4. SHUTDOWN COORDINATOR
    # ========================================================================

    log.info("Initializing shutdown system...")

    coordinator = ShutdownCoordinator()
    coordinator.register(FanControllerShutdownHandler(control_loop))
    coordinator.register(TaskCancellationHandler())
    coordinator.register(GPIOShutdownHandler(gpio_manager))

    loop = asyncio.get_running_loop()
    coordinator.setup_signal_handlers(loop)

    log.info("🏁 Fan controller running. Waiting for exit signal...", **control_loop.status().as_dict())

    await coordinator.wait_for_shutdown()

    await coordinator.shutdown_all()
    log.info("👋 Fan controller shut down cleanly.", tasks=TaskRegistry.instance().summary())
    return 0


# ---------------------------------------------------------------------------
# ENTRY POINT
# ---------------------------------------------------------------------------

def run() -> None:
    exit_code = 1
    try:
        exit_code = asyncio.run(main())
    except KeyboardInterrupt:
        log.info("Keyboard interrupt received")
        exit_code = 0
    except Exception as e:
        log.error(f"Fatal error: {e}", exc_info=True)
    finally:
        sys.exit(exit_code)


if __name__ == "__main__":
    run()
