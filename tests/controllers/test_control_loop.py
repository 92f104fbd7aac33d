import asyncio
from unittest.mock import AsyncMock

import pytest

from conftest import ScriptedSource, fast_config
from hardware.sensors.temperature_source import TemperatureSource
from lifecycle.task_registry import TaskCategory, TaskRegistry
from models.enums import FanMode, LoopPhase
from models.errors import ResourceAcquisitionError

PIN = 14


class ExplodingSensor:
    """Sensor whose read() raises something TemperatureSource would never raise."""

    async def read(self):
        raise RuntimeError("sensor bus wedged")


# ------------------------------------------------------------------
# Start / status
# ------------------------------------------------------------------

@pytest.mark.asyncio
async def test_linear_pwm_at_55_degrees_drives_half_speed(make_controller, make_sensor):
    sensor, _ = make_sensor([55.0])
    controller = make_controller(fast_config(mode=FanMode.LINEAR_PWM, min_temp=40, max_temp=70), sensor)

    await controller.start()
    status = controller.status()

    assert status.running is True
    assert status.phase == LoopPhase.RUNNING
    assert status.current_level == 50
    assert status.current_temperature == 55.0
    assert status.pwm_active is True
    assert status.degraded is False


@pytest.mark.asyncio
async def test_on_off_thermostat_sequence(make_controller, make_sensor):
    sensor, _ = make_sensor([50.0, 56.0, 50.0, 44.0])
    config = fast_config(mode=FanMode.ON_OFF, turn_on_temp=55, turn_off_temp=45)
    controller = make_controller(config, sensor)

    await controller.start()
    seen = [controller.status().current_level]
    for _ in range(3):
        await controller.run_cycle()
        seen.append(controller.status().current_level)

    assert ["ON" if level else "OFF" for level in seen] == ["OFF", "ON", "ON", "OFF"]
    assert controller.status().pwm_active is False


@pytest.mark.asyncio
async def test_start_twice_raises(make_controller, make_sensor):
    sensor, _ = make_sensor([30.0])
    controller = make_controller(fast_config(), sensor)

    await controller.start()
    with pytest.raises(RuntimeError):
        await controller.start()


@pytest.mark.asyncio
async def test_disabled_config_never_acquires(gpio, make_controller, make_sensor):
    sensor, source = make_sensor([60.0])
    controller = make_controller(fast_config(enabled=False), sensor)

    await controller.start()

    assert controller.phase == LoopPhase.STOPPED
    assert gpio.get_registry() == {}
    assert source.calls == 0


@pytest.mark.asyncio
async def test_registration_failure_leaves_loop_stopped(gpio, make_controller, make_sensor):
    gpio.fail_register = RuntimeError("GPIO busy")
    sensor, source = make_sensor([65.0])
    controller = make_controller(fast_config(), sensor)

    with pytest.raises(ResourceAcquisitionError):
        await controller.start()

    status = controller.status()
    assert status.running is False
    assert status.phase == LoopPhase.STOPPED
    assert status.pwm_active is False
    assert TaskRegistry.instance().active(TaskCategory.HARDWARE) == []
    assert source.calls == 0


@pytest.mark.asyncio
async def test_pin_conflict_is_acquisition_error(gpio, make_controller, make_sensor):
    gpio.register_output(PIN, "OtherPlugin")
    sensor, _ = make_sensor([65.0])
    controller = make_controller(fast_config(), sensor)

    with pytest.raises(ResourceAcquisitionError):
        await controller.start()

    assert gpio.get_registry() == {PIN: "OtherPlugin"}


# ------------------------------------------------------------------
# Stop
# ------------------------------------------------------------------

@pytest.mark.asyncio
async def test_stop_mid_pwm_forces_low_and_stops_writing(gpio, make_controller, make_sensor):
    sensor, _ = make_sensor([55.0])
    controller = make_controller(fast_config(), sensor)

    await controller.start()
    await asyncio.sleep(0.05)
    await controller.stop()

    count = len(gpio.history)
    await asyncio.sleep(0.1)

    assert gpio.writes_for(PIN)[-1] == 0
    assert len(gpio.history) == count
    assert gpio.released == [PIN]
    assert gpio.get_registry() == {}
    assert TaskRegistry.instance().active() == []
    assert controller.status().running is False


@pytest.mark.asyncio
async def test_stop_is_idempotent(make_controller, make_sensor):
    sensor, _ = make_sensor([55.0])
    controller = make_controller(fast_config(), sensor)

    await controller.stop()
    await controller.start()
    await controller.stop()
    await controller.stop()

    assert controller.phase == LoopPhase.STOPPED


@pytest.mark.asyncio
async def test_restart_reacquires(gpio, make_controller, make_sensor):
    sensor, _ = make_sensor([80.0])
    controller = make_controller(fast_config(), sensor)

    await controller.start()
    await controller.restart()

    assert controller.is_running
    assert gpio.released == [PIN]
    assert controller.status().current_level == 100


# ------------------------------------------------------------------
# Periodic ticks
# ------------------------------------------------------------------

@pytest.mark.asyncio
async def test_schedule_follows_temperature(make_controller, make_sensor):
    sensor, _ = make_sensor([30.0, 30.0, 80.0])
    controller = make_controller(fast_config(check_interval_seconds=0.05), sensor)

    await controller.start()
    assert controller.status().current_level == 0

    await asyncio.sleep(0.3)
    assert controller.status().current_level == 100
    assert controller.state.ticks >= 3


@pytest.mark.asyncio
async def test_slow_reads_skip_ticks_instead_of_overlapping(make_controller):
    source = ScriptedSource([50.0], delay=0.15)
    controller = make_controller(fast_config(check_interval_seconds=0.05), TemperatureSource([source]))

    await controller.start()
    await asyncio.sleep(0.5)

    assert controller.state.skipped_ticks > 0
    assert source.max_in_flight == 1


@pytest.mark.asyncio
async def test_deadband_holds_small_changes(make_controller, make_sensor):
    sensor, _ = make_sensor([55.0, 58.0, 70.0])
    controller = make_controller(fast_config(deadband=10), sensor)

    await controller.start()
    assert controller.status().current_level == 50

    await controller.run_cycle()   # 58°C -> 60%, within deadband
    assert controller.status().current_level == 50

    await controller.run_cycle()   # 70°C -> full speed is never held back
    assert controller.status().current_level == 100


# ------------------------------------------------------------------
# Faults
# ------------------------------------------------------------------

@pytest.mark.asyncio
async def test_write_failure_is_retried_next_cycle(gpio, make_controller, make_sensor):
    sensor, _ = make_sensor([80.0])
    controller = make_controller(fast_config(), sensor)
    gpio.fail_writes = True

    await controller.start()

    status = controller.status()
    assert status.running is True
    assert status.current_level == 0
    assert status.last_error is not None
    assert status.degraded is True

    gpio.fail_writes = False
    await controller.run_cycle()

    status = controller.status()
    assert status.current_level == 100
    assert status.last_error is None


@pytest.mark.asyncio
async def test_sensor_fallback_is_reported(make_controller, make_sensor):
    sensor, _ = make_sensor([OSError("no such file")], fallback_temp=35.0)
    controller = make_controller(fast_config(), sensor)

    await controller.start()
    status = controller.status()

    assert status.sensor_fallback is True
    assert status.sensor_source == "fallback"
    assert status.current_temperature == 35.0
    assert status.current_level == 0
    assert status.degraded is True


@pytest.mark.asyncio
async def test_unexpected_read_error_is_a_noop(make_controller):
    controller = make_controller(fast_config(), ExplodingSensor())

    await controller.start()

    assert controller.is_running
    assert controller.status().current_level == 0
    assert "sensor bus wedged" in controller.status().last_error


# ------------------------------------------------------------------
# Manual control
# ------------------------------------------------------------------

@pytest.mark.asyncio
async def test_override_and_clear(make_controller, make_sensor):
    sensor, _ = make_sensor([55.0, 55.0, 62.0, 55.0])
    controller = make_controller(fast_config(), sensor)

    await controller.start()
    assert controller.status().current_level == 50

    await controller.set_override(100)
    status = controller.status()
    assert status.current_level == 100
    assert status.override_level == 100
    assert status.pwm_active is False

    await controller.run_cycle()
    assert controller.status().current_level == 100
    assert controller.status().current_temperature == 62.0

    await controller.clear_override()
    assert controller.status().override_level is None
    assert controller.status().current_level == 50


@pytest.mark.asyncio
async def test_override_out_of_range_rejected(make_controller, make_sensor):
    sensor, _ = make_sensor([55.0])
    controller = make_controller(fast_config(), sensor)

    with pytest.raises(ValueError):
        await controller.set_override(120)


@pytest.mark.asyncio
async def test_self_test_suspends_and_resumes_control(make_controller, make_sensor):
    sensor, _ = make_sensor([80.0])
    controller = make_controller(fast_config(), sensor)
    await controller.start()

    test_run = asyncio.create_task(controller.run_test(level=30, duration=0.2))
    await asyncio.sleep(0.1)

    assert controller.is_running is False
    assert controller.actuator.level == 30
    assert controller.actuator.pwm_active is True

    await test_run

    assert controller.is_running is True
    assert controller.status().current_level == 100


@pytest.mark.asyncio
async def test_self_test_while_stopped_releases_pin(gpio, make_controller, make_sensor):
    sensor, _ = make_sensor([30.0])
    controller = make_controller(fast_config(), sensor)

    status = await controller.run_test(level=50, duration=0.05)

    writes = gpio.writes_for(PIN)
    assert 1 in writes
    assert writes[-1] == 0
    assert gpio.get_registry() == {}
    assert status.running is False
    assert status.pwm_active is False


# ------------------------------------------------------------------
# Configuration changes
# ------------------------------------------------------------------

@pytest.mark.asyncio
async def test_update_config_restarts_with_new_policy(gpio, make_controller, make_sensor):
    sensor, _ = make_sensor([55.0])
    controller = make_controller(fast_config(), sensor)
    await controller.start()
    assert controller.status().current_level == 50

    await controller.update_config(fast_config(mode=FanMode.ON_OFF, turn_on_temp=50, turn_off_temp=40))

    status = controller.status()
    assert status.running is True
    assert status.mode == FanMode.ON_OFF
    assert status.current_level == 100
    assert gpio.released == [PIN]


@pytest.mark.asyncio
async def test_update_config_to_disabled_only_stops(gpio, make_controller, make_sensor):
    sensor, _ = make_sensor([55.0])
    controller = make_controller(fast_config(), sensor)
    await controller.start()

    await controller.update_config(fast_config(enabled=False))

    assert controller.phase == LoopPhase.STOPPED
    assert controller.status().enabled is False
    assert gpio.get_registry() == {}
    assert gpio.writes_for(PIN)[-1] == 0


@pytest.mark.asyncio
async def test_update_config_moves_to_new_pin(gpio, make_controller, make_sensor):
    sensor, _ = make_sensor([80.0])
    controller = make_controller(fast_config(), sensor)
    await controller.start()

    await controller.update_config(fast_config(gpio_pin=18))

    assert gpio.get_registry() == {18: "FanActuator(18)"}
    assert gpio.read(18) == 1
    assert gpio.read(PIN) == 0


@pytest.mark.asyncio
async def test_set_enabled_toggles_loop(make_controller, make_sensor):
    sensor, _ = make_sensor([55.0])
    controller = make_controller(fast_config(), sensor)
    await controller.start()

    await controller.set_enabled(False)
    assert controller.phase == LoopPhase.STOPPED

    await controller.set_enabled(True)
    assert controller.is_running
    assert controller.config.enabled is True


@pytest.mark.asyncio
async def test_failed_full_speed_write_does_not_strand_previous_level(gpio, make_controller, make_sensor):
    sensor, _ = make_sensor([55.0, 75.0, 55.0])
    controller = make_controller(fast_config(), sensor)
    await controller.start()
    assert controller.status().pwm_active is True

    gpio.fail_writes = True
    await controller.run_cycle()
    assert controller.status().current_level == 0
    assert controller.status().last_error is not None

    gpio.fail_writes = False
    await controller.run_cycle()

    status = controller.status()
    assert status.current_level == 50
    assert status.pwm_active is True
    assert status.last_error is None


@pytest.mark.asyncio
async def test_unexpected_error_in_first_cycle_rolls_back_start(gpio, make_controller, make_sensor):
    sensor, _ = make_sensor([55.0])
    controller = make_controller(fast_config(), sensor)
    controller.actuator.apply = AsyncMock(side_effect=TypeError("bad driver call"))

    with pytest.raises(TypeError):
        await controller.start()

    assert controller.phase == LoopPhase.STOPPED
    assert controller.status().running is False
    assert gpio.released == [PIN]
    assert gpio.get_registry() == {}
    assert TaskRegistry.instance().active(TaskCategory.HARDWARE) == []
