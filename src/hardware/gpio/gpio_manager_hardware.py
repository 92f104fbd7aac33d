"""
GPIO Manager - Infrastructure Layer Component

Centralized GPIO pin allocation and lifecycle management for the fan
output pin. Provides conflict detection and resource tracking.

Architecture: Infrastructure Layer
- Sits between FanActuator and the RPi.GPIO hardware driver
- Manages pin registry and prevents conflicts
- Centralizes GPIO.setup() and cleanup() operations
"""

from typing import Dict
from hardware.gpio.gpio_manager_interface import IGPIOManager, IPWMChannel
from models.enums import GPIOInitialState
from utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.HARDWARE)


class HardwarePWMChannel(IPWMChannel):
    """
    RPi.GPIO PWM object behind the IPWMChannel protocol.

    Pulses are timed by the RPi.GPIO driver thread, not the event loop.
    """

    def __init__(self, gpio, pin: int, frequency_hz: float):
        self.pin = pin
        self.duty_cycle = 0.0
        self._pwm = gpio.PWM(pin, frequency_hz)
        self._active = False
        self._closed = False

    @property
    def active(self) -> bool:
        return self._active

    def start(self, duty_cycle: float) -> None:
        if self._closed:
            raise RuntimeError(f"PWM channel on GPIO {self.pin} is closed")
        if self._active:
            self.change_duty_cycle(duty_cycle)
            return
        self._pwm.start(duty_cycle)
        self.duty_cycle = duty_cycle
        self._active = True

    def change_duty_cycle(self, duty_cycle: float) -> None:
        self._pwm.ChangeDutyCycle(duty_cycle)
        self.duty_cycle = duty_cycle

    async def stop(self) -> None:
        if self._active:
            self._pwm.stop()
            self._active = False

    def close(self) -> None:
        if self._active:
            self._pwm.stop()
            self._active = False
        self._closed = True


class HardwareGPIOManager(IGPIOManager):
    """
    Infrastructure component managing GPIO pin allocation and lifecycle.

    Responsibilities:
    - Initialize RPi.GPIO library (BCM mode, disable warnings)
    - Track registered pins (prevent conflicts)
    - Release single pins when a controller stops
    - Clean up all registered pins on shutdown
    """

    def __init__(self):
        """Initialize GPIO library and empty pin registry"""
        try:
            import RPi.GPIO as GPIO
        except ImportError as e:
            raise RuntimeError("RPi.GPIO not available") from e

        self._gpio = GPIO
        self._registry: Dict[int, str] = {}  # pin -> component_name

        self._gpio.setmode(self._gpio.BCM)
        self._gpio.setwarnings(False)

        log.info("GPIO manager initialized (BCM mode)")


    # -------------------------------
    # Registration
    # -------------------------------

    def register_output(
        self,
        pin: int,
        component: str,
        initial: GPIOInitialState = GPIOInitialState.LOW
    ) -> None:
        """
        Register and setup output pin

        Args:
            pin: BCM GPIO pin number
            component: Component name for tracking (e.g., "FanActuator(14)")
            initial: Initial state (default: LOW)

        Raises:
            ValueError: If pin already registered by another component
        """
        self._check_available(pin, component)

        # Map our enum to RPi.GPIO constants
        gpio_initial = {
            GPIOInitialState.LOW: self._gpio.LOW,
            GPIOInitialState.HIGH: self._gpio.HIGH
        }[initial]

        self._gpio.setup(pin, self._gpio.OUT, initial=gpio_initial)
        self._registry[pin] = component

        log.info(
            "GPIO pin registered (OUTPUT)",
            pin=pin,
            component=component,
            initial=initial.name
        )

    def open_pwm(self, pin: int, frequency_hz: float) -> HardwarePWMChannel:
        """
        Create a driver-timed PWM channel (GPIO.PWM) on a registered output.

        Raises:
            ValueError: If pin is not registered as output
        """
        if pin not in self._registry:
            raise ValueError(f"GPIO {pin} is not registered as output")

        channel = HardwarePWMChannel(self._gpio, pin, frequency_hz)
        log.info("PWM channel opened", pin=pin, frequency=f"{frequency_hz:g}Hz")
        return channel

    def release(self, pin: int) -> None:
        """
        Release a single pin back to the driver.

        Unknown pins are ignored so callers can release unconditionally.
        """
        component = self._registry.pop(pin, None)
        if component is None:
            return

        self._gpio.cleanup(pin)
        log.info("GPIO pin released", pin=pin, component=component)


    # -------------------------------
    # IO
    # -------------------------------

    def read(self, pin: int) -> int:
        return int(self._gpio.input(pin))

    def write(self, pin: int, value: int) -> None:
        self._gpio.output(pin, self._gpio.HIGH if value else self._gpio.LOW)


    # -------------------------------
    # Lifecycle
    # -------------------------------

    def cleanup(self) -> None:
        """
        Cleanup all registered GPIO pins

        Called on application shutdown to release GPIO resources.
        """
        pin_count = len(self._registry)
        log.info(f"Cleaning up {pin_count} GPIO pins")

        self._gpio.cleanup()
        self._registry.clear()

        log.info("GPIO cleanup complete")

    def get_registry(self) -> Dict[int, str]:
        """
        Get current pin allocations (for debugging)

        Returns:
            Dict mapping pin number to component name
        """
        return self._registry.copy()


    def _check_available(self, pin: int, component: str) -> None:
        """
        Check if pin is available for registration

        Raises:
            ValueError: If pin already registered
        """
        if pin in self._registry:
            existing_owner = self._registry[pin]
            error_msg = (
                f"GPIO pin conflict detected: Pin {pin} requested by '{component}' "
                f"is already registered to '{existing_owner}'"
            )
            log.error(error_msg)
            raise ValueError(error_msg)
