import pytest

from controllers.fan_policies import (
    compute_level,
    hysteresis_level,
    linear_level,
    on_off_level,
    round_half_up,
    should_apply,
)
from models.config import ControllerConfig
from models.enums import FanMode


@pytest.fixture
def linear():
    return ControllerConfig(mode=FanMode.LINEAR_PWM, min_temp=40, max_temp=70)


@pytest.fixture
def thermostat():
    return ControllerConfig(mode=FanMode.ON_OFF, turn_on_temp=55, turn_off_temp=45)


# ------------------------------------------------------------------
# LINEAR_PWM
# ------------------------------------------------------------------

def test_linear_midpoint(linear):
    assert compute_level(55.0, linear) == 50


@pytest.mark.parametrize("temp", [-5.0, 20.0, 40.0])
def test_linear_off_at_or_below_min(linear, temp):
    assert linear_level(temp, linear) == 0


@pytest.mark.parametrize("temp", [70.0, 85.0, 99.9])
def test_linear_full_at_or_above_max(linear, temp):
    assert linear_level(temp, linear) == 100


def test_linear_is_monotonic(linear):
    levels = [linear_level(30 + i * 0.25, linear) for i in range(200)]
    assert levels == sorted(levels)
    assert all(0 <= level <= 100 for level in levels)


def test_linear_rounds_half_up():
    config = ControllerConfig(min_temp=40, max_temp=80)
    # (41 - 40) / 40 * 100 = 2.5
    assert linear_level(41.0, config) == 3


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(2.49) == 2
    assert round_half_up(0.5) == 1


# ------------------------------------------------------------------
# ON_OFF
# ------------------------------------------------------------------

def test_on_off_sequence(thermostat):
    level = 0
    seen = []
    for temp in [50, 56, 50, 44]:
        level = compute_level(temp, thermostat, level)
        seen.append("ON" if level > 0 else "OFF")

    assert seen == ["OFF", "ON", "ON", "OFF"]


@pytest.mark.parametrize("temp", [45.5, 50.0, 54.9])
def test_on_off_holds_state_inside_band(thermostat, temp):
    assert on_off_level(temp, thermostat, previous=0) == 0
    assert on_off_level(temp, thermostat, previous=100) == 100


def test_on_off_thresholds_are_inclusive(thermostat):
    assert on_off_level(55.0, thermostat, previous=0) == 100
    assert on_off_level(45.0, thermostat, previous=100) == 0


def test_on_off_defaults_to_linear_range():
    config = ControllerConfig(mode=FanMode.ON_OFF, min_temp=40, max_temp=70)
    assert on_off_level(69.0, config, previous=0) == 0
    assert on_off_level(70.0, config, previous=0) == 100
    assert on_off_level(41.0, config, previous=100) == 100
    assert on_off_level(40.0, config, previous=100) == 0


# ------------------------------------------------------------------
# HYSTERESIS
# ------------------------------------------------------------------

def test_hysteresis_floors_to_one_from_min(linear):
    assert hysteresis_level(39.9, linear) == 0
    assert hysteresis_level(40.0, linear) == 1
    assert hysteresis_level(40.1, linear) == 1
    assert hysteresis_level(55.0, linear) == 50
    assert hysteresis_level(70.0, linear) == 100


def test_compute_level_dispatches_hysteresis():
    config = ControllerConfig(mode=FanMode.HYSTERESIS, min_temp=40, max_temp=70)
    assert compute_level(40.0, config) == 1


# ------------------------------------------------------------------
# Re-application gate
# ------------------------------------------------------------------

def test_gate_without_deadband_is_exact_change():
    assert should_apply(51, 50) is True
    assert should_apply(50, 50) is False


@pytest.mark.parametrize("target, current, expected", [
    (53, 50, False),
    (60, 50, False),
    (61, 50, True),
    (0, 3, True),
    (1, 0, True),
    (4, 0, True),
    (100, 97, True),
    (100, 100, False),
])
def test_gate_with_deadband(target, current, expected):
    assert should_apply(target, current, deadband=10) is expected


def test_hysteresis_floor_is_not_held_back_by_deadband():
    config = ControllerConfig(mode=FanMode.HYSTERESIS, min_temp=40, max_temp=70, deadband=10)

    target = compute_level(40.5, config, previous=0)

    assert target == 1
    assert should_apply(target, 0, config.deadband) is True
