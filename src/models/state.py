"""
Controller runtime state

ControllerState is mutable and owned by exactly one ControlLoop.
ControllerStatus is the read-only snapshot handed to the host shell.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

from models.enums import FanMode, LoopPhase


@dataclass
class ControllerState:
    """Mutable loop state (created on start, torn down on stop)"""
    current_level: int = 0
    running: bool = False
    last_temperature: Optional[float] = None
    sensor_source: Optional[str] = None
    sensor_fallback: bool = False
    override_level: Optional[int] = None
    last_error: Optional[str] = None
    ticks: int = 0
    skipped_ticks: int = 0

    @property
    def fan_on(self) -> bool:
        return self.current_level > 0


@dataclass(frozen=True)
class ControllerStatus:
    """Read-only status snapshot for display"""
    enabled: bool
    running: bool
    phase: LoopPhase
    mode: FanMode
    current_temperature: Optional[float]
    current_level: int
    sensor_source: Optional[str] = None
    sensor_fallback: bool = False
    override_level: Optional[int] = None
    pwm_active: bool = False
    last_error: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return self.sensor_fallback or self.last_error is not None

    def as_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["phase"] = self.phase.name
        data["mode"] = self.mode.name
        data["degraded"] = self.degraded
        return data
