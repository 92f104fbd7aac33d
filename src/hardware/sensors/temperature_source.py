"""
Temperature Source - Hardware Abstraction Layer

Reads the SoC temperature from an ordered list of candidate sources:
- CommandTemperatureSource: platform tool output (e.g. `vcgencmd measure_temp`)
- FileTemperatureSource: sysfs thermal zone files

The first plausible value wins. When nothing is plausible the configured
fallback temperature is returned, flagged with fallback=True, so a tick
always has a number to work with.
"""

from __future__ import annotations

import asyncio
import contextlib
import re
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence

from models.config import ControllerConfig, SensorConfig
from models.enums import SensorType
from models.errors import SensorUnavailableError
from utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.SENSOR)

# Raw values above this are milli-degrees (sysfs reports 48312 for 48.312°C)
MILLIDEGREE_THRESHOLD = 1000.0

# Errors a single candidate may raise; anything else is a bug and propagates
SOURCE_ERRORS = (OSError, ValueError, asyncio.TimeoutError)


@dataclass(frozen=True)
class TemperatureReading:
    celsius: float
    source: str
    fallback: bool = False


class ITemperatureSource(Protocol):
    """One candidate source. read_raw() raises on any failure."""

    @property
    def name(self) -> str:
        ...

    async def read_raw(self) -> float:
        ...


# ============================================================
#  Candidate sources
# ============================================================

class CommandTemperatureSource:
    """
    Runs a command and parses its output.

    With a pattern, the first capture group of the first match is the value.
    Without one, the whole stripped stdout must be a number.
    """

    def __init__(self, argv: Sequence[str], pattern: Optional[str] = None, timeout_seconds: float = 2.0):
        if not argv:
            raise ValueError("argv cannot be empty")
        self.argv = tuple(argv)
        self.pattern = re.compile(pattern) if pattern else None
        self.timeout_seconds = timeout_seconds

    @property
    def name(self) -> str:
        return " ".join(self.argv)

    async def read_raw(self) -> float:
        proc = await asyncio.create_subprocess_exec(
            *self.argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=self.timeout_seconds)
        finally:
            if proc.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    proc.kill()
                await proc.wait()

        if proc.returncode != 0:
            raise OSError(f"'{self.name}' exited with status {proc.returncode}")

        return self.parse(stdout.decode(errors="replace"))

    def parse(self, output: str) -> float:
        if self.pattern is None:
            return float(output.strip())

        match = self.pattern.search(output)
        if match is None:
            raise ValueError(f"No temperature in output: {output.strip()!r}")
        return float(match.group(1))


class FileTemperatureSource:
    """Reads a numeric value from a file (blocking IO runs in a worker thread)."""

    def __init__(self, path: str):
        self.path = path

    @property
    def name(self) -> str:
        return self.path

    async def read_raw(self) -> float:
        text = await asyncio.to_thread(self._read_file)
        return float(text.strip())

    def _read_file(self) -> str:
        with open(self.path, "r") as f:
            return f.read()


def build_source(sensor: SensorConfig) -> ITemperatureSource:
    """Create a candidate source from its settings entry."""
    if sensor.type == SensorType.COMMAND:
        return CommandTemperatureSource(sensor.argv, sensor.pattern, sensor.timeout_seconds)
    return FileTemperatureSource(sensor.path)


# ============================================================
#  Ordered source with fallback
# ============================================================

class TemperatureSource:
    """
    Ordered list of candidate sources with plausibility filtering.

    read() never raises for sensor problems and never returns a value
    outside (plausible_min, plausible_max). No retries happen within one
    read(); the control loop's interval is the retry mechanism.
    """

    def __init__(
        self,
        sources: List[ITemperatureSource],
        fallback_temp: float = 35.0,
        plausible_min: float = 0.0,
        plausible_max: float = 100.0,
    ):
        self.sources = list(sources)
        self.fallback_temp = fallback_temp
        self.plausible_min = plausible_min
        self.plausible_max = plausible_max

    @classmethod
    def from_config(cls, config: ControllerConfig) -> "TemperatureSource":
        return cls(
            sources=[build_source(s) for s in config.sensors],
            fallback_temp=config.fallback_temp,
            plausible_min=config.plausible_min,
            plausible_max=config.plausible_max,
        )

    @staticmethod
    def normalize(raw: float) -> float:
        """Convert milli-degree readings to degrees."""
        if raw > MILLIDEGREE_THRESHOLD:
            return raw / 1000.0
        return raw

    def is_plausible(self, celsius: float) -> bool:
        return self.plausible_min < celsius < self.plausible_max

    async def read(self) -> TemperatureReading:
        try:
            return await self._read_first_plausible()
        except SensorUnavailableError as e:
            log.warn(
                "No plausible temperature source, using fallback",
                fallback=f"{self.fallback_temp:.1f}°C",
                attempted=", ".join(e.details["attempted"]) or "none"
            )
            return TemperatureReading(self.fallback_temp, "fallback", fallback=True)

    async def _read_first_plausible(self) -> TemperatureReading:
        attempted = []

        for source in self.sources:
            attempted.append(source.name)
            try:
                raw = await source.read_raw()
            except SOURCE_ERRORS as e:
                log.debug("Temperature source failed", source=source.name, error=repr(e))
                continue

            celsius = self.normalize(raw)
            if not self.is_plausible(celsius):
                log.debug("Implausible temperature ignored", source=source.name, value=celsius)
                continue

            return TemperatureReading(celsius, source.name)

        raise SensorUnavailableError(attempted)
