import os
import sys
import shutil
import importlib.util

THERMAL_ZONE_PATH = "/sys/class/thermal/thermal_zone0/temp"

class RuntimeInfo:
    """Host capability probes used to pick real or mock hardware"""

    @classmethod
    def is_linux(cls) -> bool:
        return sys.platform.startswith("linux")

    @classmethod
    def is_raspberry_pi(cls) -> bool:
        if not cls.is_linux():
            return False
        try:
            with open("/proc/cpuinfo", "r") as f:
                return "Raspberry Pi" in f.read()
        except OSError:
            return False

    @classmethod
    def has_gpio(cls) -> bool:
        return cls.has_module("RPi.GPIO")

    @classmethod
    def has_vcgencmd(cls) -> bool:
        return shutil.which("vcgencmd") is not None

    @classmethod
    def has_thermal_zone(cls) -> bool:
        return os.path.exists(THERMAL_ZONE_PATH)

    @classmethod
    def has_module(cls, module_name: str) -> bool:
        try:
            return importlib.util.find_spec(module_name) is not None
        except (ImportError, ValueError):
            return False

    @classmethod
    def describe(cls) -> dict:
        return {
            "platform": sys.platform,
            "raspberry_pi": cls.is_raspberry_pi(),
            "gpio": cls.has_gpio(),
            "vcgencmd": cls.has_vcgencmd(),
            "thermal_zone": cls.has_thermal_zone(),
        }
