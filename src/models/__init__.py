"""
Models package - Data models for the fan controller
"""

from .enums import FanMode, LoopPhase, SensorType, LogLevel, LogCategory, GPIOInitialState
from .config import ControllerConfig, SensorConfig
from .state import ControllerState, ControllerStatus
from .errors import (
    FanControlError,
    SensorUnavailableError,
    ActuatorWriteError,
    ResourceAcquisitionError,
    InvalidConfigurationError,
)

__all__ = [
    'FanMode',
    'LoopPhase',
    'SensorType',
    'LogLevel',
    'LogCategory',
    'GPIOInitialState',
    'ControllerConfig',
    'SensorConfig',
    'ControllerState',
    'ControllerStatus',
    'FanControlError',
    'SensorUnavailableError',
    'ActuatorWriteError',
    'ResourceAcquisitionError',
    'InvalidConfigurationError',
]
