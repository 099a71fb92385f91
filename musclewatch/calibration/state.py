"""
Calibration States
NotStarted -> Calibrating(progress) -> Calibrated(baseline) | Failed(reason)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class CalibrationFailure(Enum):
    INSUFFICIENT_SAMPLES = 'insufficient_samples'
    UNSTABLE = 'unstable'
    INVALID_BASELINE = 'invalid_baseline'


class CalibrationState:
    """Base class for the calibration state variants"""

    @property
    def is_calibrated(self) -> bool:
        return False

    @property
    def is_calibrating(self) -> bool:
        return False

    @property
    def is_failed(self) -> bool:
        return False

    @property
    def status_text(self) -> str:
        raise NotImplementedError


@dataclass(frozen=True)
class NotStarted(CalibrationState):

    @property
    def status_text(self) -> str:
        return "Not calibrated"


@dataclass(frozen=True)
class Calibrating(CalibrationState):
    progress: float = 0.0  # 0.0 - 1.0

    @property
    def is_calibrating(self) -> bool:
        return True

    @property
    def status_text(self) -> str:
        return f"Calibrating... {int(self.progress * 100)}%"


@dataclass(frozen=True)
class Calibrated(CalibrationState):
    baseline: float

    @property
    def is_calibrated(self) -> bool:
        return True

    @property
    def status_text(self) -> str:
        return f"Calibrated (baseline: {self.baseline:.0f})"


@dataclass(frozen=True)
class Failed(CalibrationState):
    kind: CalibrationFailure
    reason: str
    cv: Optional[float] = None

    @property
    def is_failed(self) -> bool:
        return True

    @property
    def status_text(self) -> str:
        return f"Calibration failed: {self.reason}"
