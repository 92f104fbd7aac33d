"""
ControlLoop - closed-loop fan control

Periodically reads the temperature, maps it to a fan level through the
configured policy and applies it to the FanActuator.

Phases: STOPPED -> STARTING -> RUNNING -> STOPPING -> STOPPED

Lifecycle calls (start, stop, restart, update_config, overrides, self-test)
are serialised by one asyncio.Lock. Periodic ticks run as separate tasks;
at most one is in flight, a tick that comes due while the previous one is
still running is skipped.
"""

from __future__ import annotations

import asyncio
import dataclasses
from typing import Optional

from controllers.fan_policies import compute_level, should_apply
from hardware.gpio.gpio_manager_interface import IGPIOManager
from hardware.output.fan_actuator import FanActuator
from hardware.sensors.temperature_source import TemperatureReading, TemperatureSource
from lifecycle.task_registry import create_tracked_task, TaskCategory
from models.config import ControllerConfig
from models.enums import LoopPhase
from models.errors import ActuatorWriteError, ResourceAcquisitionError
from models.state import ControllerState, ControllerStatus
from utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.CONTROL)


class ControlLoop:
    """
    Fan controller for one GPIO pin.

    Args:
        config: Validated controller configuration
        gpio_manager: GPIO backend used by the FanActuator
        sensor: Temperature source (default: built from config.sensors)
    """

    def __init__(
        self,
        config: ControllerConfig,
        gpio_manager: IGPIOManager,
        sensor: Optional[TemperatureSource] = None,
    ):
        self._gpio = gpio_manager
        self._custom_sensor = sensor
        self._config = config
        self._sensor = sensor or TemperatureSource.from_config(config)
        self._actuator = FanActuator(gpio_manager, config.gpio_pin, config.pwm_period_seconds)

        self._state = ControllerState()
        self._phase = LoopPhase.STOPPED
        self._lock = asyncio.Lock()

        self._schedule_task: Optional[asyncio.Task] = None
        self._tick_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> ControllerConfig:
        return self._config

    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def phase(self) -> LoopPhase:
        return self._phase

    @property
    def actuator(self) -> FanActuator:
        return self._actuator

    @property
    def sensor(self) -> TemperatureSource:
        return self._sensor

    @property
    def is_running(self) -> bool:
        return self._phase == LoopPhase.RUNNING

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """
        Acquire the fan output, run one cycle immediately, then schedule
        periodic cycles.

        Raises:
            RuntimeError: not STOPPED
            ResourceAcquisitionError: GPIO pin could not be acquired
        """
        async with self._lock:
            await self._start_locked()

    async def stop(self) -> None:
        """Stop periodic control, force the fan off and release the pin. Idempotent."""
        async with self._lock:
            await self._stop_locked()

    async def restart(self) -> None:
        """stop(), wait restart_delay_seconds, start()."""
        async with self._lock:
            await self._stop_locked()
            await asyncio.sleep(self._config.restart_delay_seconds)
            await self._start_locked()

    async def update_config(self, config: ControllerConfig) -> None:
        """
        Replace the configuration wholesale.

        A running loop is stopped (fan forced off, pin released) and started
        again with the new config, unless the new config is disabled.
        """
        async with self._lock:
            was_running = self.is_running
            if was_running:
                await self._stop_locked()

            self._install_config(config)
            log.info("Configuration updated", mode=config.mode.name, enabled=config.enabled, pin=config.gpio_pin)

            if was_running and config.enabled:
                await asyncio.sleep(config.restart_delay_seconds)
                await self._start_locked()

    async def set_enabled(self, enabled: bool) -> None:
        """Flip `enabled`; enabling a stopped controller also starts it."""
        await self.update_config(dataclasses.replace(self._config, enabled=enabled))
        if enabled and self._phase == LoopPhase.STOPPED:
            await self.start()

    async def run_cycle(self) -> None:
        """Run one control cycle now (no-op unless RUNNING). The schedule is unaffected."""
        async with self._lock:
            if self.is_running:
                await self._cycle_now()

    # ------------------------------------------------------------------
    # Manual control
    # ------------------------------------------------------------------

    async def set_override(self, level: int) -> None:
        """
        Hold the fan at `level` regardless of temperature.

        Cycles keep reading and recording the temperature. Applied at once
        when running.
        """
        if not 0 <= level <= 100:
            raise ValueError(f"Override level must be 0-100, got {level}")

        async with self._lock:
            self._state.override_level = int(level)
            log.info("Manual override set", fan_level=f"{level}%")
            if self.is_running:
                await self._cycle_now()

    async def clear_override(self) -> None:
        """Return to policy control."""
        async with self._lock:
            if self._state.override_level is None:
                return
            self._state.override_level = None
            log.info("Manual override cleared")
            if self.is_running:
                await self._cycle_now()

    async def run_test(self, level: int = 50, duration: float = 10.0) -> ControllerStatus:
        """
        PWM self-test: suspend periodic control and drive the fan at `level`
        for `duration` seconds.

        Afterwards the loop is restarted if it was running; otherwise the fan
        is left off and the pin released.
        """
        async with self._lock:
            was_running = self.is_running
            if was_running:
                await self._stop_locked()

            log.info("PWM self-test started", fan_level=f"{level}%", duration=f"{duration}s", pin=self._config.gpio_pin)
            try:
                try:
                    self._actuator.acquire()
                    await self._actuator.apply(level)
                    await asyncio.sleep(duration)
                finally:
                    await self._actuator.stop()
                    self._actuator.release()
                log.info("PWM self-test completed")
            finally:
                if was_running:
                    await asyncio.sleep(self._config.restart_delay_seconds)
                    await self._start_locked()

        return self.status()

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def status(self) -> ControllerStatus:
        s = self._state
        return ControllerStatus(
            enabled=self._config.enabled,
            running=self.is_running,
            phase=self._phase,
            mode=self._config.mode,
            current_temperature=s.last_temperature,
            current_level=self._actuator.level,
            sensor_source=s.sensor_source,
            sensor_fallback=s.sensor_fallback,
            override_level=s.override_level,
            pwm_active=self._actuator.pwm_active,
            last_error=s.last_error,
        )

    async def read_temperature(self) -> TemperatureReading:
        """One-off reading for status display; does not touch the fan."""
        return await self._sensor.read()

    # ------------------------------------------------------------------
    # Internals: lifecycle
    # ------------------------------------------------------------------

    def _install_config(self, config: ControllerConfig) -> None:
        """Swap config and rebuild the actuator and sensor (only while STOPPED)."""
        self._config = config
        self._actuator = FanActuator(self._gpio, config.gpio_pin, config.pwm_period_seconds)
        if self._custom_sensor is None:
            self._sensor = TemperatureSource.from_config(config)

    async def _start_locked(self) -> None:
        if self._phase != LoopPhase.STOPPED:
            raise RuntimeError(f"Cannot start fan control from phase {self._phase.name}")

        if not self._config.enabled:
            log.info("Fan control disabled, not starting")
            return

        self._phase = LoopPhase.STARTING
        self._state = ControllerState(override_level=self._state.override_level)

        try:
            self._actuator.acquire()
        except ResourceAcquisitionError as e:
            self._actuator.release()
            self._phase = LoopPhase.STOPPED
            log.error("Fan control failed to start", pin=self._config.gpio_pin, error=e.message)
            raise

        self._state.running = True
        self._phase = LoopPhase.RUNNING

        log.info(
            "Fan control started",
            pin=self._config.gpio_pin,
            mode=self._config.mode.name,
            range=f"{self._config.min_temp:.0f}°C - {self._config.max_temp:.0f}°C",
            interval=f"{self._config.check_interval_seconds:g}s",
            pwm=f"{1000.0 / self._config.pwm_period_ms:g}Hz"
        )

        try:
            await self._cycle_now()
        except Exception as e:
            log.error("Initial fan control cycle failed, stopping", error=repr(e), exc_info=True)
            await self._stop_locked()
            raise

        self._schedule_task = create_tracked_task(
            self._schedule(),
            category=TaskCategory.HARDWARE,
            description=f"Fan control schedule GPIO{self._config.gpio_pin}"
        )

    async def _stop_locked(self) -> None:
        if self._phase == LoopPhase.STOPPED:
            return

        self._phase = LoopPhase.STOPPING
        await self._cancel_tasks()

        await self._actuator.stop()
        if self._config.release_delay_seconds > 0:
            await asyncio.sleep(self._config.release_delay_seconds)
        self._actuator.release()

        self._state.running = False
        self._state.current_level = 0
        self._phase = LoopPhase.STOPPED
        log.info("Fan control stopped", pin=self._config.gpio_pin, ticks=self._state.ticks)

    async def _cancel_tasks(self) -> None:
        tasks = [t for t in (self._schedule_task, self._tick_task) if t is not None and not t.done()]
        self._schedule_task = None
        self._tick_task = None

        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Internals: cycles
    # ------------------------------------------------------------------

    async def _schedule(self) -> None:
        interval = self._config.check_interval_seconds
        while True:
            await asyncio.sleep(interval)

            if self._tick_in_flight():
                self._state.skipped_ticks += 1
                log.warn("Previous cycle still running, tick skipped", skipped=self._state.skipped_ticks)
                continue

            self._tick_task = self._spawn_tick()

    def _tick_in_flight(self) -> bool:
        return self._tick_task is not None and not self._tick_task.done()

    def _spawn_tick(self) -> asyncio.Task:
        return create_tracked_task(
            self._run_cycle(),
            category=TaskCategory.SENSOR,
            description=f"Fan control cycle GPIO{self._config.gpio_pin}"
        )

    async def _cycle_now(self) -> None:
        """Run one cycle immediately, after any tick already in flight."""
        if self._tick_in_flight():
            await asyncio.gather(self._tick_task, return_exceptions=True)

        self._tick_task = self._spawn_tick()
        await self._tick_task

    async def _run_cycle(self) -> None:
        """read -> policy -> gate -> apply. Steady-state faults end here."""
        if self._phase != LoopPhase.RUNNING:
            return

        state = self._state
        state.ticks += 1

        try:
            reading = await self._sensor.read()
        except Exception as e:
            state.last_error = f"Temperature read failed: {e!r}"
            log.error("Temperature read failed, cycle skipped", error=repr(e))
            return

        state.last_temperature = reading.celsius
        state.sensor_source = reading.source
        state.sensor_fallback = reading.fallback

        current = state.current_level
        if state.override_level is not None:
            target = state.override_level
            apply = target != current
        else:
            target = compute_level(reading.celsius, self._config, current)
            apply = should_apply(target, current, self._config.deadband)

        # Output state unknown (fresh acquire or failed write): always drive
        if self._actuator.applied_level is None:
            apply = True

        if not apply:
            state.last_error = None
            log.debug("Fan level unchanged", temperature=f"{reading.celsius:.1f}°C", fan_level=f"{current}%", target=f"{target}%")
            return

        try:
            await self._actuator.apply(target)
        except ActuatorWriteError as e:
            state.current_level = self._actuator.level
            state.last_error = e.message
            log.error("Fan level not applied, retrying next cycle", target=f"{target}%", error=e.message)
            return

        state.current_level = target
        state.last_error = None
        log.info(
            "Fan level changed",
            temperature=f"{reading.celsius:.1f}°C" + (" (fallback)" if reading.fallback else ""),
            change=f"{current}% → {target}%",
            source="override" if state.override_level is not None else self._config.mode.name
        )
