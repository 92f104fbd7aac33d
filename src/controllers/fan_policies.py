"""
Fan policies: temperature -> fan level (0-100)

Pure functions of (temperature, config, previous level). No IO, no state,
so the control loop stays the only owner of ControllerState.
"""

import math
from typing import Callable, Dict

from models.config import ControllerConfig
from models.enums import FanMode

FULL_OFF = 0
FULL_ON = 100


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (round() is banker's rounding)."""
    return math.floor(value + 0.5)


def clamp_level(level: float) -> int:
    return max(FULL_OFF, min(FULL_ON, int(level)))


def linear_level(temp: float, config: ControllerConfig, previous: int = 0) -> int:
    """Linear interpolation between min_temp (0%) and max_temp (100%)."""
    if temp <= config.min_temp:
        return FULL_OFF
    if temp >= config.max_temp:
        return FULL_ON

    fraction = (temp - config.min_temp) / (config.max_temp - config.min_temp)
    return clamp_level(round_half_up(fraction * 100))


def on_off_level(temp: float, config: ControllerConfig, previous: int = 0) -> int:
    """
    Thermostat with hysteresis.

    Off turns on at turn_on_temp, on turns off at turn_off_temp; between
    the two the previous state is kept.
    """
    fan_on = previous > 0

    if not fan_on and temp >= config.turn_on_temp:
        return FULL_ON
    if fan_on and temp <= config.turn_off_temp:
        return FULL_OFF
    return FULL_ON if fan_on else FULL_OFF


def hysteresis_level(temp: float, config: ControllerConfig, previous: int = 0) -> int:
    """Linear mapping that never drops below 1% once min_temp is reached."""
    level = linear_level(temp, config, previous)
    if temp >= config.min_temp:
        return max(1, level)
    return level


POLICIES: Dict[FanMode, Callable[[float, ControllerConfig, int], int]] = {
    FanMode.LINEAR_PWM: linear_level,
    FanMode.ON_OFF: on_off_level,
    FanMode.HYSTERESIS: hysteresis_level,
}


def compute_level(temp: float, config: ControllerConfig, previous: int = 0) -> int:
    """Dispatch to the policy selected by config.mode."""
    return POLICIES[config.mode](temp, config, previous)


def should_apply(target: int, current: int, deadband: int = 0) -> bool:
    """
    Re-application gate.

    A change larger than the deadband is applied. Reaching full-off or
    full-on, or starting a stopped fan, is applied whenever it differs from
    the current level.
    """
    if target == current:
        return False
    if target in (FULL_OFF, FULL_ON) or current == FULL_OFF:
        return True
    return abs(target - current) > deadband
