"""
Enums for the fan controller
"""

from enum import Enum, auto


class FanMode(Enum):
    """
    Policy used to turn a temperature into a fan level

    ON_OFF: Thermostat with separate turn-on / turn-off thresholds
    LINEAR_PWM: Level interpolated linearly between min_temp and max_temp
    HYSTERESIS: Linear mapping, floored to 1% once min_temp is reached
    """
    ON_OFF = auto()
    LINEAR_PWM = auto()
    HYSTERESIS = auto()


class LoopPhase(Enum):
    """ControlLoop lifecycle states"""
    STOPPED = auto()
    STARTING = auto()
    RUNNING = auto()
    STOPPING = auto()


class SensorType(Enum):
    """Kinds of temperature sources that can be configured"""
    COMMAND = auto()   # Platform command, e.g. `vcgencmd measure_temp`
    FILE = auto()      # Sensor file, e.g. sysfs thermal zone


class LogLevel(Enum):
    """Log severity levels"""
    DEBUG = auto()
    INFO = auto()
    WARN = auto()
    ERROR = auto()


class GPIOInitialState(Enum):
    """GPIO output pin initial state"""
    LOW = auto()         # Start LOW (0V)
    HIGH = auto()        # Start HIGH (3.3V)


class LogCategory(Enum):
    """Log categories for grouping related events"""
    CONFIG = auto()      # Configuration loading, validation
    HARDWARE = auto()    # GPIO registration, pin writes
    SENSOR = auto()      # Temperature sources
    FAN = auto()         # Actuator level changes, PWM trains
    CONTROL = auto()     # Control loop ticks and transitions
    SYSTEM = auto()      # Startup, shutdown, errors

    SHUTDOWN = auto()
    LIFECYCLE = auto()
    TASK = auto()

    GENERAL = auto()    # Default general category
