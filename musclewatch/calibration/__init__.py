"""
Baseline Calibration for musclewatch
Still-period IR baseline capture gating normalization

States:
- NotStarted: no baseline, normalization undefined
- Calibrating(progress): collecting in-range samples for 15s
- Calibrated(baseline): median baseline, normalization enabled
- Failed(kind, reason): insufficient samples, unstable signal or
  invalid baseline; retry with start_calibration()

Usage:
    manager = CalibrationManager(on_complete=lambda b: print(b))
    manager.start_calibration()
    for sample in samples:
        manager.add_calibration_sample(sample.ir, sample.timestamp)
    percent = manager.normalize(ir_value)
"""

from .config import CalibrationConfig
from .manager import CalibrationManager
from .state import (
    CalibrationFailure,
    CalibrationState,
    Calibrated,
    Calibrating,
    Failed,
    NotStarted,
)

__all__ = [
    'CalibrationManager',
    'CalibrationConfig',
    'CalibrationState',
    'CalibrationFailure',
    'NotStarted',
    'Calibrating',
    'Calibrated',
    'Failed',
]

__version__ = '1.0.0'
