"""
IR-DC Baseline Processor
Tracks the low-frequency IR baseline and its short-term shift

A shift is the mean of the oldest part of the rolling window minus the
mean of the whole window. A positive shift means the baseline has dropped,
which is the signature of occlusion or muscle activity.
"""

import logging
from collections import deque
from dataclasses import dataclass
from itertools import islice
from typing import Iterable, List, Optional

import numpy as np

from ..models import PPGSample
from .butterworth import ButterworthFilter, FilterType
from .config import SignalConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IRDCResult:
    raw_ir: float
    dc_value: float
    rolling_mean: float
    shift: float
    normalized_percent: Optional[float]
    timestamp: Optional[float] = None


class IRDCProcessor:
    """
    Streaming IR baseline extraction

    - Lowpass (0.8 Hz) every raw sample to obtain the DC component
    - Rolling mean of the last 5s of DC values
    - Shift against the first 1s of that window
    - Optional calibration baseline for percent normalization
    """

    def __init__(self, config: Optional[SignalConfig] = None):
        """
        Initialize IR-DC processor

        Args:
            config: Signal configuration (defaults to 50 Hz settings)
        """
        self.config = config if config else SignalConfig()

        self._lowpass = ButterworthFilter(
            FilterType.LOWPASS,
            self.config.dc_cutoff,
            self.config.sample_rate,
            order=self.config.dc_filter_order,
        )

        self._raw_buffer = deque(maxlen=self.config.dc_buffer_samples)
        self._dc_buffer = deque(maxlen=self.config.dc_buffer_samples)
        self._rolling = deque(maxlen=self.config.rolling_window_samples)

        self.calibration_baseline: Optional[float] = None

        logger.debug(
            f"IR-DC processor: {self.config.dc_cutoff} Hz lowpass, "
            f"{self.config.rolling_window_seconds}s rolling window"
        )

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def process_value(self, ir_value: float, timestamp: Optional[float] = None) -> IRDCResult:
        """
        Process one raw IR value

        Args:
            ir_value: Raw IR ADC value
            timestamp: Sample time in seconds (carried into the result)

        Returns:
            IRDCResult for this sample
        """
        raw = float(ir_value)
        dc = self._lowpass.process_sample(raw)

        self._raw_buffer.append(raw)
        self._dc_buffer.append(dc)
        self._rolling.append(dc)

        return IRDCResult(
            raw_ir=raw,
            dc_value=dc,
            rolling_mean=self.rolling_mean,
            shift=self.shift,
            normalized_percent=self.normalize(raw),
            timestamp=timestamp,
        )

    def process(self, sample: PPGSample) -> IRDCResult:
        return self.process_value(sample.ir, sample.timestamp)

    def process_batch(self, samples: Iterable[PPGSample]) -> List[IRDCResult]:
        return [self.process(sample) for sample in samples]

    # ------------------------------------------------------------------
    # Baseline queries
    # ------------------------------------------------------------------

    @property
    def rolling_mean(self) -> float:
        if not self._rolling:
            return 0.0
        return sum(self._rolling) / len(self._rolling)

    @property
    def shift(self) -> float:
        """Reference-window mean minus rolling mean (0 until the window covers the reference)"""
        reference_size = self.config.reference_window_samples
        if len(self._rolling) < reference_size:
            return 0.0
        reference = sum(islice(self._rolling, reference_size)) / reference_size
        return reference - self.rolling_mean

    def has_significant_shift(self, threshold: Optional[float] = None) -> bool:
        limit = self.config.shift_threshold if threshold is None else threshold
        return self.shift > limit

    @property
    def current_dc(self) -> Optional[float]:
        return self._dc_buffer[-1] if self._dc_buffer else None

    def recent_raw_values(self, count: int) -> List[float]:
        return list(self._raw_buffer)[-count:] if count > 0 else []

    def recent_dc_values(self, count: int) -> List[float]:
        return list(self._dc_buffer)[-count:] if count > 0 else []

    # ------------------------------------------------------------------
    # Calibration
    # ------------------------------------------------------------------

    @property
    def is_calibrated(self) -> bool:
        return self.calibration_baseline is not None

    def set_calibration(self, baseline: float):
        if baseline <= 0:
            raise ValueError(f"calibration baseline must be positive, got {baseline}")
        self.calibration_baseline = float(baseline)
        logger.info(f"✓ IR-DC calibration baseline set: {self.calibration_baseline:.0f}")

    def clear_calibration(self):
        self.calibration_baseline = None

    def calculate_calibration_baseline(self, sample_count: Optional[int] = None) -> Optional[float]:
        """
        Median of the most recent raw samples

        Args:
            sample_count: Number of samples to use (defaults to the
                calibration window, 15s)

        Returns:
            Median baseline, or None with fewer than the minimum samples
        """
        count = sample_count if sample_count else self.config.calibration_window_samples
        values = self.recent_raw_values(count)
        if len(values) < self.config.calibration_min_samples:
            return None
        return float(np.median(values))

    def calibrate(self) -> bool:
        """
        Calibrate from the recent raw history

        Returns:
            True if a stable baseline was found and applied
        """
        values = np.array(self.recent_raw_values(self.config.calibration_window_samples))
        if values.size < self.config.calibration_min_samples:
            logger.warning(
                f"⚠ IR-DC calibration needs {self.config.calibration_min_samples} samples, "
                f"have {values.size}"
            )
            return False

        cv = float(np.std(values)) / max(1.0, abs(float(np.mean(values))))
        if cv > self.config.calibration_max_cv:
            logger.warning(f"⚠ IR-DC calibration rejected: CV {cv * 100:.1f}%")
            return False

        self.set_calibration(float(np.median(values)))
        return True

    def normalize(self, ir_value: float) -> Optional[float]:
        if self.calibration_baseline is None:
            return None
        return (ir_value - self.calibration_baseline) / self.calibration_baseline * 100.0

    @property
    def normalized_percent(self) -> Optional[float]:
        if not self._raw_buffer:
            return None
        return self.normalize(self._raw_buffer[-1])

    def is_above_activity_threshold(self, threshold: Optional[float] = None) -> Optional[bool]:
        """
        Check the latest sample against the activity threshold

        Returns:
            None when uncalibrated or empty, otherwise the comparison result
        """
        percent = self.normalized_percent
        if percent is None:
            return None
        limit = self.config.activity_threshold_percent if threshold is None else threshold
        return percent > limit

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------

    def reset(self):
        """Clear buffers and filter state, keeping calibration"""
        self._raw_buffer.clear()
        self._dc_buffer.clear()
        self._rolling.clear()
        self._lowpass.reset()

    def full_reset(self):
        self.reset()
        self.clear_calibration()

    @property
    def sample_count(self) -> int:
        return len(self._raw_buffer)
