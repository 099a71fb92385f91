"""
Calibration Configuration
Still-period baseline capture parameters
"""

from dataclasses import dataclass


@dataclass
class CalibrationConfig:
    """Baseline calibration parameters"""

    duration_seconds: float = 15.0  # Length of the still period
    minimum_samples: int = 500  # Accepted samples required (~10s at 50 Hz)

    # Valid raw IR range; samples outside are skipped
    min_valid_ir: float = 10000.0
    max_valid_ir: float = 5000000.0

    max_cv: float = 1.5  # Coefficient of variation above which calibration fails
    warn_cv: float = 0.5  # Coefficient of variation logged as a warning

    @classmethod
    def for_quick_check(cls) -> 'CalibrationConfig':
        """
        Create a configuration for a short bench check.

        Five seconds at 50 Hz yields 250 samples, so the sample minimum is
        lowered to 200.

        Returns:
            CalibrationConfig with a 5s still period.
        """
        return cls(duration_seconds=5.0, minimum_samples=200)
