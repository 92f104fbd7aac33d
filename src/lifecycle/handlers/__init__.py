from .fan_controller_shutdown_handler import FanControllerShutdownHandler
from .gpio_shutdown_handler import GPIOShutdownHandler
from .task_cancellation_handler import TaskCancellationHandler

__all__ = [
    "FanControllerShutdownHandler",
    "GPIOShutdownHandler",
    "TaskCancellationHandler",
]
