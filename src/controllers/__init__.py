from .control_loop import ControlLoop
from .fan_policies import compute_level, should_apply, linear_level, on_off_level, hysteresis_level

__all__ = [
    'ControlLoop',
    'compute_level',
    'should_apply',
    'linear_level',
    'on_off_level',
    'hysteresis_level',
]
