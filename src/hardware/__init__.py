"""
Hardware Layer

Low-level hardware access only:

- GPIO (IGPIOManager, hardware and mock backends)
- Temperature sources (command output, sysfs files)
- Fan output (constant level or software PWM)
"""
from .gpio import IGPIOManager, HardwareGPIOManager, MockGPIOManager, create_gpio_manager
from .sensors import TemperatureSource, TemperatureReading
from .output import FanActuator

__all__ = [
    "IGPIOManager",
    "HardwareGPIOManager",
    "MockGPIOManager",
    "create_gpio_manager",
    "TemperatureSource",
    "TemperatureReading",
    "FanActuator",
]
