from .fan_actuator import FanActuator

__all__ = ["FanActuator"]
