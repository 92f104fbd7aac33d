"""
Software PWM - duty cycle timed by the event loop

One tracked task per running channel toggles the pin: HIGH for
`duty_cycle`% of each period, LOW for the rest. Used by MockGPIOManager,
where there is no driver thread to time the pulses.

change_duty_cycle() takes effect from the next period, like
GPIO.PWM.ChangeDutyCycle; the pulse task is not restarted.
"""

from __future__ import annotations

import asyncio
from typing import Optional, TYPE_CHECKING

from lifecycle.task_registry import create_tracked_task, TaskCategory
from utils.logger import get_logger, LogCategory

if TYPE_CHECKING:
    from hardware.gpio.gpio_manager_interface import IGPIOManager

log = get_logger().for_category(LogCategory.HARDWARE)

LOW = 0
HIGH = 1


class SoftwarePWM:
    """
    PWM channel driving `pin` through plain gpio.write() calls.

    Args:
        gpio: GPIO backend the pulses are written to
        pin: BCM pin number (already registered as output)
        frequency_hz: PWM frequency (50 Hz = 20 ms period)
    """

    def __init__(self, gpio: "IGPIOManager", pin: int, frequency_hz: float):
        if frequency_hz <= 0:
            raise ValueError("frequency_hz must be positive")

        self._gpio = gpio
        self.pin = pin
        self.period_seconds = 1.0 / frequency_hz
        self.duty_cycle = 0.0

        self._task: Optional[asyncio.Task] = None
        self._failing = False
        self._closed = False

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    def start(self, duty_cycle: float) -> None:
        if self._closed:
            raise RuntimeError(f"PWM channel on GPIO {self.pin} is closed")

        self.duty_cycle = duty_cycle
        if self.active:
            return

        self._failing = False
        self._task = create_tracked_task(
            self._pulse_train(),
            category=TaskCategory.HARDWARE,
            description=f"Software PWM GPIO{self.pin}"
        )

    def change_duty_cycle(self, duty_cycle: float) -> None:
        self.duty_cycle = duty_cycle

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    def close(self) -> None:
        self._closed = True
        if self.active:
            self._task.cancel()
        self._task = None

    async def _pulse_train(self) -> None:
        loop = asyncio.get_running_loop()
        period_start = loop.time()

        try:
            while True:
                on_seconds = self.duty_cycle / 100.0 * self.period_seconds

                self._pulse_write(HIGH)
                await asyncio.sleep(on_seconds)
                self._pulse_write(LOW)

                period_start += self.period_seconds
                delay = period_start - loop.time()
                if delay < 0:
                    # Fell behind (loop was busy): restart the grid from now
                    period_start = loop.time()
                    delay = 0
                await asyncio.sleep(delay)
        finally:
            if not self._closed:
                self._pulse_write(LOW)

    def _pulse_write(self, value: int) -> None:
        """Write one edge; failures are logged once per outage and the train continues."""
        try:
            self._gpio.write(self.pin, value)
        except (OSError, RuntimeError, ValueError) as e:
            if not self._failing:
                log.error("PWM write failed, pulse train continues", pin=self.pin, error=str(e))
            self._failing = True
            return

        if self._failing:
            log.info("PWM writes recovered", pin=self.pin)
            self._failing = False
