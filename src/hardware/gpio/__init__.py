
from .gpio_manager_interface import IGPIOManager, IPWMChannel
from .software_pwm import SoftwarePWM
from .gpio_manager_hardware import HardwareGPIOManager, HardwarePWMChannel
from .gpio_manager_mock import MockGPIOManager
from .gpio_manager_factory import create_gpio_manager


__all__ = [
    "IGPIOManager",
    "IPWMChannel",
    "SoftwarePWM",
    "HardwarePWMChannel",
    "HardwareGPIOManager",
    "MockGPIOManager",
    "create_gpio_manager",
]
