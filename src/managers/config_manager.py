"""
Config Manager

Loads fan controller settings from YAML and turns them into a validated
ControllerConfig. Falls back to factory defaults when the main file is
missing or invalid. Settings are never written back.

Expected layout:

    fan_controller:
      gpio_pin: 14
      mode: LINEAR_PWM
      min_temp: 40
      ...
    sensors:                # optional, replaces the default source list
      - type: command
        argv: [vcgencmd, measure_temp]
        pattern: "temp=([0-9.]+)'C"
      - type: file
        path: /sys/class/thermal/thermal_zone0/temp
    logging:                # optional
      level: INFO
      use_colors: true
"""

import copy
import yaml
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from models.config import ControllerConfig
from models.enums import LogLevel
from models.errors import InvalidConfigurationError
from utils.enum_helper import EnumHelper
from utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.CONFIG)

SECTION = "fan_controller"


@dataclass(frozen=True)
class SettingsLimits:
    """Bounds accepted from user settings (stricter than ControllerConfig itself)."""
    min_interval_seconds: float = 5.0
    max_interval_seconds: float = 60.0
    min_temp: float = 0.0
    max_temp: float = 100.0

    def check(self, config: ControllerConfig) -> None:
        if not (self.min_interval_seconds <= config.check_interval_seconds <= self.max_interval_seconds):
            raise InvalidConfigurationError(
                f"check_interval_seconds must be between {self.min_interval_seconds:g} "
                f"and {self.max_interval_seconds:g}",
                field="check_interval_seconds"
            )

        for name in ("min_temp", "max_temp", "turn_on_temp", "turn_off_temp"):
            value = getattr(config, name)
            if not (self.min_temp <= value <= self.max_temp):
                raise InvalidConfigurationError(
                    f"{name} must be between {self.min_temp:g} and {self.max_temp:g}°C",
                    field=name
                )


class ConfigManager:
    """
    Fan controller configuration manager

    Example:
        config_manager = ConfigManager()
        config = config_manager.load()

        # Later, from a settings form or command:
        config = config_manager.update({"mode": "ON_OFF", "turn_on_temp": 60})
        await control_loop.update_config(config)
    """

    def __init__(
        self,
        config_path="config/fan_controller.yaml",
        defaults_path="config/factory_defaults.yaml",
        limits: SettingsLimits = SettingsLimits(),
    ):
        """
        Args:
            config_path: Main settings file (relative paths resolve against src/)
            defaults_path: Factory defaults fallback
            limits: Bounds enforced on user settings
        """
        self.config_path = self._resolve(config_path)
        self.factory_defaults_path = self._resolve(defaults_path)
        self.limits = limits
        self.data: Dict[str, Any] = {}
        self._config: Optional[ControllerConfig] = None
        self.using_defaults = False

    @staticmethod
    def _resolve(path) -> Path:
        path = Path(path)
        if path.is_absolute():
            return path
        src_dir = Path(__file__).parent.parent
        return src_dir / path

    @property
    def config(self) -> ControllerConfig:
        if self._config is None:
            raise RuntimeError("ConfigManager.load() has not been called")
        return self._config

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self) -> ControllerConfig:
        """
        Load settings and build the controller config.

        Process:
        1. Load main fan_controller.yaml
        2. Validate into ControllerConfig (+ SettingsLimits)
        3. On any failure fall back to factory_defaults.yaml

        Raises:
            InvalidConfigurationError / OSError: factory defaults are unusable too
        """
        try:
            data = self._read_yaml(self.config_path)
            config = self.build(data)
            self.using_defaults = False
            log.info("Configuration loaded", file=self.config_path.name, mode=config.mode.name, pin=config.gpio_pin)

        except (OSError, yaml.YAMLError, InvalidConfigurationError) as ex:
            log.error(f"Failed to load {self.config_path.name}", error=str(ex), error_type=type(ex).__name__)
            log.warn("Falling back to factory defaults")

            data = self._read_yaml(self.factory_defaults_path)
            config = self.build(data)
            self.using_defaults = True

        self.data = data
        self._config = config
        return config

    def _read_yaml(self, path: Path) -> Dict[str, Any]:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise InvalidConfigurationError(f"{path.name} must contain a mapping at top level")
        return data

    def build(self, data: Dict[str, Any]) -> ControllerConfig:
        """Validate a raw settings document into a ControllerConfig."""
        section = data.get(SECTION) or {}
        if not isinstance(section, dict):
            raise InvalidConfigurationError(f"'{SECTION}' must be a mapping", field=SECTION)

        sensors = data.get("sensors")
        if sensors is not None and not isinstance(sensors, list):
            raise InvalidConfigurationError("'sensors' must be a list", field="sensors")

        config = ControllerConfig.from_dict(section, sensors)
        self.limits.check(config)
        return config

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def update(self, settings: Dict[str, Any]) -> ControllerConfig:
        """
        Merge `settings` into the fan_controller section and validate.

        On failure InvalidConfigurationError is raised and the previous
        config stays in effect. Nothing is persisted.
        """
        data = copy.deepcopy(self.data)
        section = dict(data.get(SECTION) or {})
        section.update(settings)
        data[SECTION] = section

        config = self.build(data)

        changed = sorted(k for k in settings if (self.data.get(SECTION) or {}).get(k) != settings[k])
        self.data = data
        self._config = config
        log.info("Settings updated", changed=", ".join(changed) or "none")
        return config

    # ------------------------------------------------------------------
    # Logging section
    # ------------------------------------------------------------------

    def log_settings(self) -> Tuple[LogLevel, bool]:
        """Return (min_level, use_colors) from the optional logging section."""
        section = self.data.get("logging") or {}
        level_name = str(section.get("level", "INFO"))
        try:
            level = EnumHelper.to_enum(LogLevel, "WARN" if level_name.upper() == "WARNING" else level_name)
        except ValueError:
            log.warn("Unknown log level, using INFO", requested=level_name)
            level = LogLevel.INFO
        return level, bool(section.get("use_colors", True))
