from typing import Protocol, Dict
from models.enums import GPIOInitialState


class IPWMChannel(Protocol):
    """
    Duty-cycle output on one registered pin.

    Mirrors RPi.GPIO's PWM object: start(duty), change_duty_cycle(duty),
    stop(). stop() is awaited so a channel timed by the event loop can
    finish its last LOW write before the caller continues.
    """

    @property
    def active(self) -> bool:
        ...

    def start(self, duty_cycle: float) -> None:
        ...

    def change_duty_cycle(self, duty_cycle: float) -> None:
        ...

    async def stop(self) -> None:
        ...

    def close(self) -> None:
        """Stop without waiting; the channel cannot be started again."""
        ...


class IGPIOManager(Protocol):

    # -------------------------------
    # Registration
    # -------------------------------

    def register_output(
        self,
        pin: int,
        component: str,
        initial: GPIOInitialState = GPIOInitialState.LOW
    ) -> None:
        """Claim pin as a digital output. Raises ValueError if already claimed."""
        ...

    def open_pwm(self, pin: int, frequency_hz: float) -> IPWMChannel:
        """Create a PWM channel on a registered output pin. Raises ValueError if not registered."""
        ...

    def release(self, pin: int) -> None:
        """Return a single pin to the unclaimed state"""
        ...


    # -------------------------------
    # IO
    # -------------------------------

    def read(self, pin: int) -> int:
        """Read GPIO pin value (0 or 1)"""
        ...

    def write(self, pin: int, value: int) -> None:
        """Write value to GPIO pin (0 or 1)"""
        ...


    # -------------------------------
    # Lifecycle / Debug
    # -------------------------------

    def cleanup(self) -> None:
        ...

    def get_registry(self) -> Dict[int, str]:
        ...
