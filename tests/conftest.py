"""
Shared fixtures for the fan controller test suite.
"""

import asyncio
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
import pytest_asyncio

from controllers.control_loop import ControlLoop
from hardware.gpio.gpio_manager_mock import MockGPIOManager
from hardware.sensors.temperature_source import TemperatureSource
from lifecycle.task_registry import TaskRegistry
from models.config import ControllerConfig
from models.enums import LogLevel
from utils.logger import configure_logger


class ScriptedSource:
    """
    Candidate temperature source returning queued values.

    Values are consumed in order; the last one repeats. Exceptions in the
    queue are raised instead of returned.
    """

    def __init__(self, values, name="scripted", delay=0.0):
        self.values = list(values)
        self._name = name
        self.delay = delay
        self.calls = 0
        self.in_flight = 0
        self.max_in_flight = 0

    @property
    def name(self) -> str:
        return self._name

    async def read_raw(self) -> float:
        self.calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            value = self.values.pop(0) if len(self.values) > 1 else self.values[0]
        finally:
            self.in_flight -= 1

        if isinstance(value, BaseException):
            raise value
        return value


def fast_config(**overrides) -> ControllerConfig:
    """Config with test-friendly timings (no lifecycle delays)."""
    values = dict(
        check_interval_seconds=60.0,
        pwm_period_ms=20.0,
        release_delay_seconds=0.0,
        restart_delay_seconds=0.0,
    )
    values.update(overrides)
    return ControllerConfig(**values)


@pytest.fixture(autouse=True)
def _test_environment():
    configure_logger(LogLevel.DEBUG, use_colors=False)
    TaskRegistry.reset()
    yield
    TaskRegistry.reset()


@pytest.fixture
def gpio():
    return MockGPIOManager()


@pytest.fixture
def make_sensor():
    """Build a TemperatureSource around one ScriptedSource."""
    def _make(values, delay=0.0, fallback_temp=35.0):
        source = ScriptedSource(values, delay=delay)
        return TemperatureSource([source], fallback_temp=fallback_temp), source
    return _make


@pytest_asyncio.fixture
async def make_controller(gpio):
    """Build ControlLoops on the mock GPIO; every one is stopped after the test."""
    controllers = []

    def _make(config, sensor):
        controller = ControlLoop(config, gpio, sensor)
        controllers.append(controller)
        return controller

    yield _make

    for controller in controllers:
        await controller.stop()
