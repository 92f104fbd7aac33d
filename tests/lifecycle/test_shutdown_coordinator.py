"""
Test shutdown coordinator: signal/trigger handling, critical task
monitoring and priority-ordered handler execution.
"""

import asyncio
import contextlib

import pytest

from conftest import fast_config
from controllers.control_loop import ControlLoop
from lifecycle.handlers import (
    FanControllerShutdownHandler,
    GPIOShutdownHandler,
    TaskCancellationHandler,
)
from lifecycle.shutdown_coordinator import ShutdownCoordinator
from lifecycle.task_registry import create_tracked_task, TaskCategory, TaskRegistry
from models.enums import LoopPhase


class RecordingHandler:
    def __init__(self, name, priority, calls, fail=False, delay=0.0):
        self.name = name
        self._priority = priority
        self.calls = calls
        self.fail = fail
        self.delay = delay

    @property
    def shutdown_priority(self) -> int:
        return self._priority

    async def shutdown(self) -> None:
        self.calls.append(self.name)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError(f"{self.name} failed")


async def sleeper():
    while True:
        await asyncio.sleep(0.05)


# ------------------------------------------------------------------
# Waiting
# ------------------------------------------------------------------

@pytest.mark.asyncio
async def test_wait_requires_setup():
    with pytest.raises(RuntimeError):
        await ShutdownCoordinator().wait_for_shutdown()


@pytest.mark.asyncio
async def test_wait_returns_on_trigger():
    coordinator = ShutdownCoordinator()
    coordinator.setup_signal_handlers(asyncio.get_running_loop())

    task = create_tracked_task(sleeper(), category=TaskCategory.HARDWARE, description="Dummy critical task")
    asyncio.get_running_loop().call_later(0.1, coordinator.trigger, "SIGTERM")

    try:
        await asyncio.wait_for(coordinator.wait_for_shutdown(), timeout=2.0)
    finally:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    assert coordinator.reason == "SIGTERM"


@pytest.mark.asyncio
async def test_wait_returns_on_critical_task_failure():
    coordinator = ShutdownCoordinator()
    coordinator._ensure_event()

    async def failing_task():
        await asyncio.sleep(0.05)
        raise RuntimeError("schedule crashed")

    create_tracked_task(failing_task(), category=TaskCategory.HARDWARE, description="Failing schedule")

    await asyncio.wait_for(coordinator.wait_for_shutdown(), timeout=2.0)

    assert coordinator.reason == "Task failure: Failing schedule"


@pytest.mark.asyncio
async def test_cancelled_critical_task_does_not_shut_down():
    coordinator = ShutdownCoordinator()
    coordinator._ensure_event()

    task = create_tracked_task(sleeper(), category=TaskCategory.HARDWARE, description="Pulse train")
    loop = asyncio.get_running_loop()
    loop.call_later(0.05, task.cancel)
    loop.call_later(0.4, coordinator.trigger, "test done")

    await asyncio.wait_for(coordinator.wait_for_shutdown(), timeout=2.0)

    assert coordinator.reason == "test done"


@pytest.mark.asyncio
async def test_non_critical_failure_is_ignored():
    coordinator = ShutdownCoordinator()
    coordinator._ensure_event()

    async def failing_tick():
        raise OSError("read failed")

    create_tracked_task(failing_tick(), category=TaskCategory.SENSOR, description="Cycle")
    asyncio.get_running_loop().call_later(0.3, coordinator.trigger, "test done")

    await asyncio.wait_for(coordinator.wait_for_shutdown(), timeout=2.0)

    assert coordinator.reason == "test done"


# ------------------------------------------------------------------
# Handlers
# ------------------------------------------------------------------

def test_register_rejects_non_handlers():
    with pytest.raises(ValueError):
        ShutdownCoordinator().register(object())


@pytest.mark.asyncio
async def test_handlers_run_by_priority_and_survive_failures():
    calls = []
    coordinator = ShutdownCoordinator(timeout_per_handler=0.1)
    coordinator.register(RecordingHandler("gpio", 10, calls))
    coordinator.register(RecordingHandler("fan", 100, calls, fail=True))
    coordinator.register(RecordingHandler("slow", 50, calls, delay=1.0))
    coordinator.register(RecordingHandler("tasks", 40, calls))

    await coordinator.shutdown_all()

    assert calls == ["fan", "slow", "tasks", "gpio"]
    assert coordinator.get_handler(RecordingHandler).name == "gpio"


@pytest.mark.asyncio
async def test_full_shutdown_sequence_leaves_fan_off(gpio, make_sensor):
    sensor, _ = make_sensor([55.0])
    controller = ControlLoop(fast_config(check_interval_seconds=0.05), gpio, sensor)
    await controller.start()

    stray = create_tracked_task(sleeper(), category=TaskCategory.GENERAL, description="Stray task")

    coordinator = ShutdownCoordinator()
    coordinator.register(GPIOShutdownHandler(gpio))
    coordinator.register(TaskCancellationHandler())
    coordinator.register(FanControllerShutdownHandler(controller))

    coordinator.trigger("SIGINT")
    await coordinator.wait_for_shutdown()
    await coordinator.shutdown_all()

    assert controller.phase == LoopPhase.STOPPED
    assert gpio.writes_for(14)[-1] == 0
    assert gpio.get_registry() == {}
    assert stray.cancelled()
    assert TaskRegistry.instance().active() == []


@pytest.mark.asyncio
async def test_fan_controller_handler_stops_running_fan(gpio, make_sensor):
    sensor, _ = make_sensor([80.0])
    controller = ControlLoop(fast_config(), gpio, sensor)
    await controller.start()
    assert controller.status().current_level == 100

    handler = FanControllerShutdownHandler(controller)
    await handler.shutdown()

    assert handler.shutdown_priority == 100
    assert controller.phase == LoopPhase.STOPPED
    assert controller.status().current_level == 0
    assert gpio.writes_for(14)[-1] == 0
    assert gpio.get_registry() == {}
