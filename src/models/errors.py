"""
Fan controller error taxonomy

Every error carries a machine-readable code, a human message and optional
details, so the host shell can display or serialize it without parsing text.

Propagation:
- SensorUnavailableError: recovered inside TemperatureSource (fallback value)
- ActuatorWriteError: absorbed by the control loop, retried next cycle
- ResourceAcquisitionError: raised from ControlLoop.start()
- InvalidConfigurationError: raised before a config is accepted
"""

from typing import Optional


class FanControlError(Exception):
    """Base class for fan controller errors"""
    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)


class SensorUnavailableError(FanControlError):
    """No temperature source produced a plausible value"""
    def __init__(self, attempted: list):
        super().__init__(
            code="SENSOR_UNAVAILABLE",
            message="No temperature source produced a plausible value",
            details={"attempted": attempted}
        )


class ActuatorWriteError(FanControlError):
    """A GPIO write did not succeed"""
    def __init__(self, pin: int, message: str):
        super().__init__(
            code="ACTUATOR_WRITE_FAILED",
            message=message,
            details={"pin": pin}
        )


class ResourceAcquisitionError(FanControlError):
    """GPIO pin could not be registered as an output"""
    def __init__(self, pin: int, message: str):
        super().__init__(
            code="RESOURCE_ACQUISITION_FAILED",
            message=message,
            details={"pin": pin}
        )


class InvalidConfigurationError(FanControlError):
    """Configuration values violate an invariant"""
    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            code="INVALID_CONFIGURATION",
            message=message,
            details={"field": field} if field else {}
        )
