"""
Fan Actuator - Hardware Abstraction Layer

Drives a fan switch on one GPIO output line:
- level 0    -> line LOW
- level 100  -> line HIGH
- 0 < level < 100 -> PWM channel from the GPIO manager at `level`% duty
  (GPIO.PWM on the Pi, an event-loop pulse train on the mock)

Ownership is scoped: acquire() registers the pin with the GPIO manager,
release() hands it back. Every write checks ownership first, so a
released actuator can never touch the line again.
"""

from __future__ import annotations

from typing import Optional

from hardware.gpio.gpio_manager_interface import IGPIOManager, IPWMChannel
from models.enums import GPIOInitialState
from models.errors import ActuatorWriteError, ResourceAcquisitionError
from utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.FAN)

LOW = 0
HIGH = 1


class FanActuator:
    """
    Constant-level or PWM fan output.

    Args:
        gpio_manager: GPIO backend (hardware or mock)
        pin: BCM pin number
        pwm_period_seconds: PWM period (0.02 = 50 Hz)
    """

    def __init__(self, gpio_manager: IGPIOManager, pin: int, pwm_period_seconds: float = 0.02):
        if pwm_period_seconds <= 0:
            raise ValueError("pwm_period_seconds must be positive")

        self._gpio = gpio_manager
        self.pin = pin
        self.pwm_period_seconds = pwm_period_seconds

        self._acquired = False
        self._level: Optional[int] = None  # None until the output is known to match a level
        self._pwm: Optional[IPWMChannel] = None

    @property
    def component(self) -> str:
        return f"FanActuator({self.pin})"

    @property
    def acquired(self) -> bool:
        return self._acquired

    @property
    def level(self) -> int:
        return self._level or 0

    @property
    def applied_level(self) -> Optional[int]:
        """Last level actually driven, or None when the output state is unknown."""
        return self._level

    @property
    def pwm_active(self) -> bool:
        return self._pwm is not None and self._pwm.active

    @property
    def pwm_channel(self) -> Optional[IPWMChannel]:
        return self._pwm

    # ------------------------------------------------------------------
    # Ownership
    # ------------------------------------------------------------------

    def acquire(self) -> None:
        """Register the pin as an output (initially LOW) and open its PWM channel. Idempotent."""
        if self._acquired:
            return

        try:
            self._gpio.register_output(self.pin, self.component, GPIOInitialState.LOW)
        except (ValueError, RuntimeError, OSError) as e:
            raise ResourceAcquisitionError(self.pin, f"Cannot acquire GPIO {self.pin}: {e}") from e

        try:
            self._pwm = self._gpio.open_pwm(self.pin, 1.0 / self.pwm_period_seconds)
        except (ValueError, RuntimeError, OSError) as e:
            self._gpio.release(self.pin)
            raise ResourceAcquisitionError(self.pin, f"Cannot open PWM on GPIO {self.pin}: {e}") from e

        self._acquired = True
        self._level = None
        log.info("Fan output acquired", pin=self.pin, pwm=f"{1.0 / self.pwm_period_seconds:g}Hz")

    def release(self) -> None:
        """
        Drive the line LOW and give the pin back. Idempotent.

        Call stop() first; a PWM channel still running here is closed
        without waiting for its last pulse.
        """
        if not self._acquired:
            return

        if self.pwm_active:
            log.warn("Releasing fan output with live PWM", pin=self.pin)
        if self._pwm is not None:
            self._pwm.close()
            self._pwm = None

        try:
            self._write(LOW)
        except ActuatorWriteError as e:
            log.error("Final LOW write failed during release", pin=self.pin, error=e.message)

        self._acquired = False
        self._level = None
        self._gpio.release(self.pin)
        log.info("Fan output released", pin=self.pin)

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    async def apply(self, level: int) -> bool:
        """
        Drive the fan at `level` percent.

        Returns False when the level equals the last applied one (no-op),
        True when the output was changed. After a failed write the level is
        unknown, so the next call always drives the output again.

        Raises:
            ActuatorWriteError: not acquired, or the GPIO write failed
        """
        clamped = max(0, min(100, int(level)))
        if clamped != level:
            log.warn("Fan level out of range, clamped", requested=level, applied=clamped)

        if not self._acquired:
            raise ActuatorWriteError(self.pin, f"GPIO {self.pin} is not acquired")

        previous = self._level
        if previous is not None and clamped == previous:
            return False

        if clamped in (0, 100):
            await self._stop_pwm()
            self._level = None
            self._write(HIGH if clamped == 100 else LOW)
        else:
            self._level = None
            self._start_pwm(clamped)

        self._level = clamped
        log.debug("Fan output applied", pin=self.pin, change=f"{previous}% → {clamped}%")
        return True

    async def stop(self) -> None:
        """Stop PWM and force the line LOW. Safe before acquire() and when repeated."""
        await self._stop_pwm()

        if not self._acquired:
            return

        try:
            self._write(LOW)
            self._level = 0
        except ActuatorWriteError as e:
            self._level = None
            log.error("Could not force fan output LOW", pin=self.pin, error=e.message)

    # ------------------------------------------------------------------
    # PWM
    # ------------------------------------------------------------------

    def _start_pwm(self, level: int) -> None:
        try:
            if self._pwm.active:
                self._pwm.change_duty_cycle(level)
            else:
                self._pwm.start(level)
        except (OSError, RuntimeError, ValueError) as e:
            raise ActuatorWriteError(self.pin, f"GPIO {self.pin} PWM failed: {e}") from e

    async def _stop_pwm(self) -> None:
        if self._pwm is not None and self._pwm.active:
            await self._pwm.stop()

    # ------------------------------------------------------------------
    # GPIO
    # ------------------------------------------------------------------

    def _write(self, value: int) -> None:
        if not self._acquired:
            raise ActuatorWriteError(self.pin, f"GPIO {self.pin} is not acquired")
        try:
            self._gpio.write(self.pin, value)
        except (OSError, RuntimeError, ValueError) as e:
            raise ActuatorWriteError(self.pin, f"GPIO {self.pin} write failed: {e}") from e
