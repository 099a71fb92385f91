"""
Heart Rate Estimation
Peak detection on filtered PPG to estimate BPM and signal quality

Two interchangeable strategies:
- AdaptiveHeartRateCalculator: per-sample smoothing with an adaptive
  threshold over a short (3s) window
- PPGHeartRateProcessor: zero-phase bandpass over a longer (3-10s)
  buffer with prominence-checked peaks and a quality score
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

import numpy as np
from scipy import signal as sps

from ..models import PPGSample
from .butterworth import ButterworthFilter, FilterType
from .config import SignalConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HeartRateResult:
    """BPM estimate with a [0, 1] quality score"""

    bpm: int
    quality: float
    reliable_threshold: float = 0.6

    @property
    def is_reliable(self) -> bool:
        return self.quality >= self.reliable_threshold

    @property
    def quality_level(self) -> str:
        if self.quality >= 0.9:
            return 'Excellent'
        if self.quality >= 0.8:
            return 'Good'
        if self.quality >= 0.7:
            return 'Fair'
        if self.quality >= 0.6:
            return 'Acceptable'
        return 'Poor'


@dataclass(frozen=True)
class PPGProcessorResult:
    """Output of the zero-phase processor; bpm is None for degraded signal"""

    bpm: Optional[int]
    quality: float
    peak_count: int = 0
    rr_intervals_ms: List[float] = field(default_factory=list)
    reliable_threshold: float = 0.5

    @property
    def is_valid(self) -> bool:
        return self.bpm is not None and self.quality > self.reliable_threshold


def _upper_median(values: Sequence[float]) -> float:
    ordered = sorted(values)
    return ordered[len(ordered) // 2]


# ---------------------------------------------------------------------------
# Adaptive streaming strategy
# ---------------------------------------------------------------------------

class AdaptiveHeartRateCalculator:
    """
    Streaming heart-rate estimator

    Each raw IR value passes a single-pole high-pass (removes the DC
    baseline) and a single-pole low-pass (smooths noise). Once the 3s
    window is full every sample triggers a fresh estimate.
    """

    def __init__(self, config: Optional[SignalConfig] = None):
        self.config = config if config else SignalConfig()
        self._filtered = deque(maxlen=self.config.adaptive_window_samples)
        self._last_raw: Optional[float] = None
        self._hp = 0.0
        self._lp = 0.0

    def _smooth(self, ir_value: float) -> float:
        previous = ir_value if self._last_raw is None else self._last_raw
        self._hp = self.config.adaptive_highpass_alpha * (self._hp + ir_value - previous)
        self._lp += self.config.adaptive_lowpass_alpha * (self._hp - self._lp)
        self._last_raw = ir_value
        return self._lp

    def process(self, ir_value: float) -> Optional[int]:
        """
        Add one raw IR sample

        Args:
            ir_value: Raw IR ADC value

        Returns:
            BPM once the window is full and a plausible rhythm is found,
            otherwise None
        """
        self._filtered.append(self._smooth(float(ir_value)))
        if len(self._filtered) < self._filtered.maxlen:
            return None
        estimate = self._estimate(np.fromiter(self._filtered, dtype=float))
        return estimate[0] if estimate else None

    def calculate(self, ir_values: Sequence[float]) -> Optional[HeartRateResult]:
        """
        Estimate heart rate over a whole buffer with a quality score

        Resets the streaming state first; the buffer must cover at least
        one analysis window.

        Args:
            ir_values: Raw IR values, oldest first

        Returns:
            HeartRateResult, or None for flat or arrhythmic input
        """
        self.reset()
        if len(ir_values) < self.config.adaptive_window_samples:
            return None

        smoothed = np.array([self._smooth(float(v)) for v in ir_values])
        estimate = self._estimate(smoothed)
        if estimate is None:
            return None

        bpm, interval_count = estimate
        std = float(np.std(smoothed))
        mean = float(np.mean(smoothed))
        amplitude_score = min(1.0, std / max(1.0, abs(mean)))
        interval_score = min(1.0, interval_count / 10.0)
        quality = 0.6 * amplitude_score + 0.4 * interval_score

        return HeartRateResult(
            bpm=bpm,
            quality=quality,
            reliable_threshold=self.config.adaptive_reliable_quality,
        )

    def _estimate(self, window: np.ndarray):
        std = float(np.std(window))
        if std < self.config.min_signal_std:
            return None

        threshold = float(np.mean(window)) + self.config.adaptive_threshold_factor * std
        peaks = [
            i for i in range(2, len(window) - 2)
            if window[i] > threshold
            and window[i] > window[i - 1]
            and window[i] > window[i + 1]
        ]
        if len(peaks) < 2:
            return None

        intervals = [
            (b - a) / self.config.sample_rate for a, b in zip(peaks, peaks[1:])
        ]
        intervals = [
            s for s in intervals
            if self.config.adaptive_min_interval < s < self.config.adaptive_max_interval
        ]
        if not intervals:
            return None

        bpm = int(60.0 / _upper_median(intervals))
        if not self.config.min_bpm <= bpm <= self.config.max_bpm:
            return None
        return bpm, len(intervals)

    def reset(self):
        self._filtered.clear()
        self._last_raw = None
        self._hp = 0.0
        self._lp = 0.0


# ---------------------------------------------------------------------------
# Zero-phase batch strategy
# ---------------------------------------------------------------------------

class PPGHeartRateProcessor:
    """
    Zero-phase heart-rate processor

    - Rolling buffer of 3-10s of PPG (green channel for PPGSample input)
    - Constant removal + 0.5-8 Hz bandpass via filtfilt
    - 5-point peak test with prominence >= 0.5 x stddev
    - Quality from amplitude, peak count and RR regularity
    """

    def __init__(self, config: Optional[SignalConfig] = None):
        """
        Initialize heart-rate processor

        Args:
            config: Signal configuration
        """
        self.config = config if config else SignalConfig()
        self._bandpass = ButterworthFilter(
            FilterType.BANDPASS,
            self.config.hr_low_cutoff,
            self.config.sample_rate,
            cutoff_high=self.config.hr_high_cutoff,
            order=self.config.hr_filter_order,
        )
        self._values = deque(maxlen=self.config.hr_max_buffer_samples)
        self._times = deque(maxlen=self.config.hr_max_buffer_samples)

        self.peak_times: List[float] = []
        self.rr_intervals_ms: List[float] = []
        self.last_result: Optional[PPGProcessorResult] = None

    def process(self, sample: PPGSample) -> Optional[PPGProcessorResult]:
        return self.process_value(sample.green, sample.timestamp)

    def process_value(self, value: float, timestamp: float) -> Optional[PPGProcessorResult]:
        """
        Add one sample and re-estimate

        Returns:
            None until the minimum buffer (3s) is filled
        """
        self._values.append(float(value))
        self._times.append(timestamp)
        if len(self._values) < self.config.hr_min_buffer_samples:
            return None
        self.last_result = self._analyze()
        return self.last_result

    def process_batch(self, samples: Iterable[PPGSample]) -> Optional[PPGProcessorResult]:
        """Add several samples, estimating once at the end"""
        for sample in samples:
            self._values.append(float(sample.green))
            self._times.append(sample.timestamp)
        if len(self._values) < self.config.hr_min_buffer_samples:
            return None
        self.last_result = self._analyze()
        return self.last_result

    def _analyze(self) -> PPGProcessorResult:
        buffer = sps.detrend(np.fromiter(self._values, dtype=float), type='constant')
        filtered = self._bandpass.filtfilt(buffer)

        std = float(np.std(filtered))
        if std <= self.config.min_signal_std:
            return PPGProcessorResult(bpm=None, quality=0.0)

        peaks = self._find_peaks(filtered, std)
        times = list(self._times)
        self.peak_times = [times[i] for i in peaks]
        if len(peaks) < 2:
            return PPGProcessorResult(bpm=None, quality=0.2, peak_count=len(peaks))

        min_rr = 60.0 / self.config.max_bpm
        max_rr = 60.0 / self.config.min_bpm
        rr = [
            (b - a) / self.config.sample_rate for a, b in zip(peaks, peaks[1:])
        ]
        rr = [s for s in rr if min_rr <= s <= max_rr]
        self.rr_intervals_ms = [s * 1000.0 for s in rr]
        if not rr:
            return PPGProcessorResult(bpm=None, quality=0.3, peak_count=len(peaks))

        bpm = int(60.0 / _upper_median(rr))
        if not self.config.min_bpm <= bpm <= self.config.max_bpm:
            return PPGProcessorResult(
                bpm=None, quality=0.4, peak_count=len(peaks), rr_intervals_ms=list(self.rr_intervals_ms)
            )

        quality = self._quality(filtered, std, len(peaks), rr)
        return PPGProcessorResult(
            bpm=bpm,
            quality=quality,
            peak_count=len(peaks),
            rr_intervals_ms=list(self.rr_intervals_ms),
            reliable_threshold=self.config.reliable_quality,
        )

    def _find_peaks(self, filtered: np.ndarray, std: float) -> List[int]:
        n = len(filtered)
        min_distance = self.config.min_peak_distance_samples
        min_prominence = self.config.peak_prominence_factor * std

        peaks: List[int] = []
        for i in range(2, n - 2):
            value = filtered[i]
            if not (value > filtered[i - 1] and value > filtered[i - 2]
                    and value > filtered[i + 1] and value > filtered[i + 2]):
                continue

            search = min(min_distance, i, n - i - 1)
            left_min = float(np.min(filtered[i - search:i]))
            right_min = float(np.min(filtered[i + 1:i + search + 1]))
            if value - max(left_min, right_min) < min_prominence:
                continue

            # The earlier of two close peaks wins
            if peaks and i - peaks[-1] < min_distance:
                continue
            peaks.append(i)
        return peaks

    @staticmethod
    def _quality(filtered: np.ndarray, std: float, peak_count: int, rr: List[float]) -> float:
        amplitude_score = min(1.0, std / max(1.0, abs(float(np.mean(filtered)))))
        peak_score = min(1.0, peak_count / 10.0)

        regularity_score = 0.0
        if len(rr) >= 2:
            rr_mean = float(np.mean(rr))
            if rr_mean > 0:
                cv = float(np.std(rr)) / rr_mean
                regularity_score = max(0.0, 1.0 - 2.0 * cv)

        quality = 0.3 * amplitude_score + 0.3 * peak_score + 0.4 * regularity_score
        return max(0.0, min(1.0, quality))

    @property
    def buffer_fill(self) -> float:
        return len(self._values) / self._values.maxlen

    def reset(self):
        self._values.clear()
        self._times.clear()
        self._bandpass.reset()
        self.peak_times = []
        self.rr_intervals_ms = []
        self.last_result = None
