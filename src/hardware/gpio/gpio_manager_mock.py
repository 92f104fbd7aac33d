from typing import Dict, List, Optional, Tuple
from hardware.gpio.gpio_manager_interface import IGPIOManager
from hardware.gpio.software_pwm import SoftwarePWM
from models.enums import GPIOInitialState
from utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.HARDWARE)

class MockGPIOManager(IGPIOManager):
    """
    In-memory GPIO used off-Pi and in tests.

    Every write is appended to `history` as (pin, value). Failures can be
    injected with `fail_writes` / `fail_register` to exercise error paths.
    PWM channels are SoftwarePWM pulse trains writing through this manager,
    so every edge lands in `history` too.
    """

    def __init__(self):
        self._registry: Dict[int, str] = {}  # pin -> component_name
        self._values: Dict[int, int] = {}
        self.history: List[Tuple[int, int]] = []
        self.released: List[int] = []
        self.fail_writes: bool = False
        self.fail_register: Optional[Exception] = None
        log.info("Mock GPIO manager initialized")

    # -------------------------------
    # Registration
    # -------------------------------

    def register_output(
        self,
        pin: int,
        component: str,
        initial: GPIOInitialState = GPIOInitialState.LOW
    ) -> None:
        if self.fail_register is not None:
            raise self.fail_register
        self._check_available(pin, component)
        self._registry[pin] = component
        self._values[pin] = int(initial == GPIOInitialState.HIGH)

    def open_pwm(self, pin: int, frequency_hz: float) -> SoftwarePWM:
        if pin not in self._registry:
            raise ValueError(f"GPIO {pin} is not registered as output")
        return SoftwarePWM(self, pin, frequency_hz)

    def release(self, pin: int) -> None:
        if self._registry.pop(pin, None) is not None:
            self.released.append(pin)


    # -------------------------------
    # IO
    # -------------------------------

    def read(self, pin: int) -> int:
        return self._values.get(pin, 0)

    def write(self, pin: int, value: int) -> None:
        if self.fail_writes:
            raise OSError(f"Mock write failure on GPIO {pin}")
        self._values[pin] = int(bool(value))
        self.history.append((pin, int(bool(value))))

    def writes_for(self, pin: int) -> List[int]:
        return [v for p, v in self.history if p == pin]

    # -------------------------------
    # Lifecycle
    # -------------------------------

    def cleanup(self) -> None:
        count = len(self._registry)
        self._registry.clear()
        self._values.clear()
        log.info(f"Mock GPIO Manager cleanup finished ({count} pins)")


    def get_registry(self) -> Dict[int, str]:
        return self._registry.copy()


    # -------------------------------
    # Internals
    # -------------------------------

    def _check_available(self, pin: int, component: str) -> None:
        if pin in self._registry:
            raise ValueError(
                f"GPIO {pin} already registered by {self._registry[pin]}"
            )
