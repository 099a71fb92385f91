"""
Calibration Manager
Captures a stable IR baseline during a still period and gates normalization

The wearer keeps still for the calibration duration (15s by default).
Every in-range IR sample is kept; when the duration has elapsed the
median becomes the baseline, provided there are enough samples and the
coefficient of variation shows a stable signal.

Elapsed time is measured from sample timestamps, so recorded sessions
replay deterministically.
"""

import logging
from typing import Callable, List, Optional

import numpy as np

from .config import CalibrationConfig
from .state import (
    CalibrationFailure,
    CalibrationState,
    Calibrated,
    Calibrating,
    Failed,
    NotStarted,
)

logger = logging.getLogger(__name__)


class CalibrationManager:
    """
    Baseline calibration state machine

    Callbacks:
        on_progress(progress): after every accepted sample
        on_complete(baseline): on success
        on_failed(reason): on failure
    """

    def __init__(
            self,
            config: Optional[CalibrationConfig] = None,
            on_progress: Optional[Callable[[float], None]] = None,
            on_complete: Optional[Callable[[float], None]] = None,
            on_failed: Optional[Callable[[str], None]] = None
    ):
        self.config = config if config else CalibrationConfig()
        self.on_progress = on_progress
        self.on_complete = on_complete
        self.on_failed = on_failed

        self._state: CalibrationState = NotStarted()
        self._samples: List[float] = []
        self._start_time: Optional[float] = None
        self._last_time: Optional[float] = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> CalibrationState:
        return self._state

    @property
    def is_calibrated(self) -> bool:
        return self._state.is_calibrated

    @property
    def is_calibrating(self) -> bool:
        return self._state.is_calibrating

    @property
    def baseline(self) -> Optional[float]:
        if isinstance(self._state, Calibrated):
            return self._state.baseline
        return None

    @property
    def progress(self) -> float:
        if isinstance(self._state, Calibrating):
            return self._state.progress
        return 1.0 if self.is_calibrated else 0.0

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def start_calibration(self, timestamp: Optional[float] = None):
        """
        Begin a new calibration period

        Args:
            timestamp: Start time in seconds. When omitted the period
                starts at the first sample received.
        """
        self._samples = []
        self._start_time = timestamp
        self._last_time = None
        self._state = Calibrating(progress=0.0)
        logger.info(f"Calibration started ({self.config.duration_seconds:.0f}s still period)")

    def cancel_calibration(self):
        if self.is_calibrating:
            logger.info("Calibration cancelled")
        self.reset()

    def reset(self):
        self._samples = []
        self._start_time = None
        self._last_time = None
        self._state = NotStarted()

    def apply_baseline(self, baseline: float):
        """
        Restore a previously computed baseline without a still period

        Raises:
            ValueError: if the baseline is outside the valid IR range
        """
        if not self.config.min_valid_ir <= baseline <= self.config.max_valid_ir:
            raise ValueError(
                f"baseline {baseline} outside valid IR range "
                f"[{self.config.min_valid_ir:.0f}, {self.config.max_valid_ir:.0f}]"
            )
        self._samples = []
        self._start_time = None
        self._state = Calibrated(baseline=float(baseline))
        logger.info(f"✓ Calibration baseline applied: {baseline:.0f}")

    # ------------------------------------------------------------------
    # Sample collection
    # ------------------------------------------------------------------

    def add_calibration_sample(self, ir_value: float, timestamp: float) -> bool:
        """
        Feed one IR sample while calibrating

        Args:
            ir_value: Raw IR ADC value
            timestamp: Sample time in seconds

        Returns:
            True if the sample was accepted into the calibration set
        """
        if not self.is_calibrating:
            return False

        if self._start_time is None:
            self._start_time = timestamp
        self._last_time = timestamp

        accepted = self.config.min_valid_ir <= ir_value <= self.config.max_valid_ir
        if accepted:
            self._samples.append(float(ir_value))
        else:
            logger.debug(f"Skipping out-of-range calibration sample: {ir_value}")

        elapsed = timestamp - self._start_time
        progress = min(max(elapsed / self.config.duration_seconds, 0.0), 1.0)

        if accepted:
            self._state = Calibrating(progress=progress)
            if self.on_progress:
                self.on_progress(progress)

        if elapsed >= self.config.duration_seconds:
            self._complete()

        return accepted

    def _complete(self):
        count = len(self._samples)
        if count < self.config.minimum_samples:
            self._fail(
                CalibrationFailure.INSUFFICIENT_SAMPLES,
                f"Insufficient samples ({count}/{self.config.minimum_samples})",
            )
            return

        values = np.array(self._samples)
        median = float(np.median(values))
        mean = float(np.mean(values))
        cv = float(np.std(values)) / mean if mean > 0 else float('inf')

        if cv > self.config.warn_cv:
            logger.warning(f"⚠ High calibration variability: CV {cv * 100:.1f}%")

        if cv > self.config.max_cv:
            self._fail(
                CalibrationFailure.UNSTABLE,
                f"Signal unstable (CV: {cv * 100:.0f}%)",
                cv=cv,
            )
            return

        if not self.config.min_valid_ir <= median <= self.config.max_valid_ir:
            self._fail(CalibrationFailure.INVALID_BASELINE, f"Invalid baseline value ({median:.0f})")
            return

        self._state = Calibrated(baseline=median)
        logger.info(f"✓ Calibration complete: baseline={median:.0f}, CV={cv * 100:.1f}%, n={count}")
        if self.on_complete:
            self.on_complete(median)

    def _fail(self, kind: CalibrationFailure, reason: str, cv: Optional[float] = None):
        self._state = Failed(kind=kind, reason=reason, cv=cv)
        logger.warning(f"⚠ Calibration failed: {reason}")
        if self.on_failed:
            self.on_failed(reason)

    # ------------------------------------------------------------------
    # Normalization
    # ------------------------------------------------------------------

    def normalize(self, ir_value: float) -> Optional[float]:
        """
        Percent deviation from baseline

        Returns:
            (ir - baseline) / baseline * 100, or None unless calibrated
        """
        baseline = self.baseline
        if baseline is None:
            return None
        return (ir_value - baseline) / baseline * 100.0

    def is_above_threshold(self, ir_value: float, threshold_percent: float) -> Optional[bool]:
        normalized = self.normalize(ir_value)
        if normalized is None:
            return None
        return normalized > threshold_percent

    def threshold_to_absolute(self, threshold_percent: float) -> Optional[float]:
        baseline = self.baseline
        if baseline is None:
            return None
        return baseline * (1.0 + threshold_percent / 100.0)

    @property
    def statistics(self) -> dict:
        """Summary of the samples collected so far in this period"""
        stats = {
            'state': self._state.status_text,
            'sample_count': len(self._samples),
            'elapsed_seconds': (
                self._last_time - self._start_time
                if self._start_time is not None and self._last_time is not None else 0.0
            ),
            'baseline': self.baseline,
        }
        if self._samples:
            values = np.array(self._samples)
            mean = float(np.mean(values))
            std = float(np.std(values))
            stats.update({
                'median': float(np.median(values)),
                'mean': mean,
                'std': std,
                'cv': std / mean if mean > 0 else None,
            })
        return stats

    def __repr__(self):
        return f"<CalibrationManager({self._state.status_text})>"
