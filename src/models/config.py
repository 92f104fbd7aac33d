"""
Controller Configuration Models

Typed, immutable configuration for one controller activation.
Defaults are applied once at construction and invariants are checked in
__post_init__, so an instance that exists is always valid.

Raw settings (YAML dicts) are converted via the from_dict() factories.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict, field
from typing import Any, Dict, List, Optional, Tuple

from models.enums import FanMode, SensorType
from models.errors import InvalidConfigurationError
from utils.enum_helper import EnumHelper

# Accepted spellings for FanMode in settings files
MODE_ALIASES = {
    "HYSTERESIS_PWM": FanMode.HYSTERESIS,
    "PWM": FanMode.LINEAR_PWM,
    "LINEAR": FanMode.LINEAR_PWM,
    "ONOFF": FanMode.ON_OFF,
}

VCGENCMD_PATTERN = r"temp=([0-9.]+)'C"


# ============================================================
#  Sensors
# ============================================================

@dataclass(frozen=True)
class SensorConfig:
    """
    One candidate temperature source.

    COMMAND sensors run `argv` and extract the value with `pattern`
    (first capture group). FILE sensors read a number from `path`.
    """
    type: SensorType
    path: Optional[str] = None
    argv: Tuple[str, ...] = ()
    pattern: Optional[str] = None
    timeout_seconds: float = 2.0

    def __post_init__(self):
        if self.type == SensorType.FILE and not self.path:
            raise InvalidConfigurationError("File sensor requires a path", field="path")
        if self.type == SensorType.COMMAND and not self.argv:
            raise InvalidConfigurationError("Command sensor requires argv", field="argv")
        if self.timeout_seconds <= 0:
            raise InvalidConfigurationError("Sensor timeout must be positive", field="timeout_seconds")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SensorConfig":
        try:
            sensor_type = EnumHelper.to_enum(SensorType, data.get("type", "file"))
        except (ValueError, TypeError) as e:
            raise InvalidConfigurationError(str(e), field="type") from e

        argv = data.get("argv", ())
        if isinstance(argv, str):
            argv = argv.split()

        return cls(
            type=sensor_type,
            path=data.get("path"),
            argv=tuple(argv),
            pattern=data.get("pattern"),
            timeout_seconds=float(data.get("timeout_seconds", 2.0)),
        )


DEFAULT_SENSORS: Tuple[SensorConfig, ...] = (
    SensorConfig(SensorType.COMMAND, argv=("vcgencmd", "measure_temp"), pattern=VCGENCMD_PATTERN),
    SensorConfig(SensorType.FILE, path="/sys/class/thermal/thermal_zone0/temp"),
    SensorConfig(SensorType.FILE, path="/sys/devices/virtual/thermal/thermal_zone0/temp"),
    SensorConfig(SensorType.FILE, path="/sys/class/sunxi_thermal/thermal_zone0/temp"),
)


# ============================================================
#  Controller
# ============================================================

@dataclass(frozen=True)
class ControllerConfig:
    """
    Fan controller configuration (immutable per activation).

    ON_OFF thresholds default to max_temp (turn on) and min_temp (turn off)
    when not given explicitly.
    """
    enabled: bool = True
    gpio_pin: int = 14
    mode: FanMode = FanMode.LINEAR_PWM

    min_temp: float = 40.0
    max_temp: float = 70.0
    turn_on_temp: Optional[float] = None
    turn_off_temp: Optional[float] = None

    check_interval_seconds: float = 10.0
    pwm_period_ms: float = 20.0            # 50 Hz
    deadband: int = 0

    fallback_temp: float = 35.0
    plausible_min: float = 0.0
    plausible_max: float = 100.0

    release_delay_seconds: float = 0.5
    restart_delay_seconds: float = 1.0

    sensors: Tuple[SensorConfig, ...] = field(default=DEFAULT_SENSORS)

    def __post_init__(self):
        # Fill ON_OFF thresholds from the linear range
        if self.turn_on_temp is None:
            object.__setattr__(self, "turn_on_temp", float(self.max_temp))
        if self.turn_off_temp is None:
            object.__setattr__(self, "turn_off_temp", float(self.min_temp))

        self._validate()

    def _validate(self) -> None:
        if self.min_temp >= self.max_temp:
            raise InvalidConfigurationError(
                f"min_temp ({self.min_temp}) must be less than max_temp ({self.max_temp})",
                field="min_temp"
            )
        if self.turn_on_temp <= self.turn_off_temp:
            raise InvalidConfigurationError(
                f"turn_on_temp ({self.turn_on_temp}) must be greater than "
                f"turn_off_temp ({self.turn_off_temp})",
                field="turn_on_temp"
            )
        if self.check_interval_seconds <= 0:
            raise InvalidConfigurationError("check_interval_seconds must be positive", field="check_interval_seconds")
        if self.pwm_period_ms <= 0:
            raise InvalidConfigurationError("pwm_period_ms must be positive", field="pwm_period_ms")
        if not (0 <= self.deadband <= 100):
            raise InvalidConfigurationError("deadband must be between 0 and 100", field="deadband")
        if self.plausible_min >= self.plausible_max:
            raise InvalidConfigurationError("plausible_min must be less than plausible_max", field="plausible_min")
        if not (self.plausible_min < self.fallback_temp < self.plausible_max):
            raise InvalidConfigurationError("fallback_temp must lie inside the plausible range", field="fallback_temp")
        if self.release_delay_seconds < 0 or self.restart_delay_seconds < 0:
            raise InvalidConfigurationError("Lifecycle delays cannot be negative", field="release_delay_seconds")
        if self.gpio_pin < 0:
            raise InvalidConfigurationError("gpio_pin cannot be negative", field="gpio_pin")

    @property
    def pwm_period_seconds(self) -> float:
        return self.pwm_period_ms / 1000.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any], sensors: Optional[List[Dict[str, Any]]] = None) -> "ControllerConfig":
        """
        Build a config from a raw settings dict (YAML section).

        Unknown keys are ignored. `pwm_frequency_hz` is accepted in place of
        `pwm_period_ms`. Raises InvalidConfigurationError on bad values.
        """
        kwargs: Dict[str, Any] = {}

        try:
            if "enabled" in data:
                kwargs["enabled"] = parse_bool(data["enabled"], "enabled")
            if "gpio_pin" in data:
                kwargs["gpio_pin"] = int(data["gpio_pin"])
            if "mode" in data:
                kwargs["mode"] = parse_mode(data["mode"])

            for key in ("min_temp", "max_temp", "turn_on_temp", "turn_off_temp",
                        "check_interval_seconds", "fallback_temp", "plausible_min",
                        "plausible_max", "release_delay_seconds", "restart_delay_seconds"):
                if data.get(key) is not None:
                    kwargs[key] = float(data[key])

            # Legacy settings key from the plugin variants
            if "check_interval" in data and "check_interval_seconds" not in kwargs:
                kwargs["check_interval_seconds"] = float(data["check_interval"])

            if "deadband" in data:
                kwargs["deadband"] = int(data["deadband"])

            if "pwm_period_ms" in data:
                kwargs["pwm_period_ms"] = float(data["pwm_period_ms"])
            elif "pwm_frequency_hz" in data:
                frequency = float(data["pwm_frequency_hz"])
                if frequency <= 0:
                    raise InvalidConfigurationError("pwm_frequency_hz must be positive", field="pwm_frequency_hz")
                kwargs["pwm_period_ms"] = 1000.0 / frequency
        except (TypeError, ValueError) as e:
            raise InvalidConfigurationError(f"Invalid setting value: {e}") from e

        if sensors:
            kwargs["sensors"] = tuple(SensorConfig.from_dict(s) for s in sensors)

        return cls(**kwargs)

    def as_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["mode"] = self.mode.name
        data["sensors"] = [
            {**asdict(s), "type": s.type.name, "argv": list(s.argv)}
            for s in self.sensors
        ]
        return data


def parse_mode(value: Any) -> FanMode:
    """Parse FanMode from enum, name or alias (case-insensitive)"""
    if isinstance(value, FanMode):
        return value
    if isinstance(value, str):
        key = value.strip().upper().replace("-", "_")
        if key in MODE_ALIASES:
            return MODE_ALIASES[key]
        try:
            return EnumHelper.to_enum(FanMode, key)
        except ValueError as e:
            raise InvalidConfigurationError(
                f"Unknown mode '{value}'. Available: {EnumHelper.list_names(FanMode)}",
                field="mode"
            ) from e
    raise InvalidConfigurationError(f"Invalid mode type: {type(value).__name__}", field="mode")


def parse_bool(value: Any, field: str) -> bool:
    """Parse a YAML flag: real booleans, 0/1, or yes/no style strings"""
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        key = value.strip().lower()
        if key in ("true", "yes", "on", "1"):
            return True
        if key in ("false", "no", "off", "0"):
            return False
    raise InvalidConfigurationError(f"Invalid value for {field}: {value!r}", field=field)
