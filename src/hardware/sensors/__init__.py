from .temperature_source import (
    TemperatureReading,
    ITemperatureSource,
    CommandTemperatureSource,
    FileTemperatureSource,
    TemperatureSource,
    build_source,
)

__all__ = [
    "TemperatureReading",
    "ITemperatureSource",
    "CommandTemperatureSource",
    "FileTemperatureSource",
    "TemperatureSource",
    "build_source",
]
