"""
Signal Processing Configuration
Filter, IR-DC baseline and heart-rate estimation parameters
"""

from dataclasses import dataclass


@dataclass
class SignalConfig:
    """Signal processing parameters for the PPG stream"""

    # Sampling
    sample_rate: float = 50.0  # Hz (PPG notifications carry 50 Hz samples)

    # IR-DC baseline extraction
    dc_cutoff: float = 0.8  # Hz - lowpass cutoff isolating the DC component
    dc_filter_order: int = 4
    dc_buffer_seconds: float = 60.0  # Maximum raw/DC history kept
    rolling_window_seconds: float = 5.0  # Window for the rolling DC mean
    reference_window_seconds: float = 1.0  # Leading part of the rolling window used as reference
    shift_threshold: float = 1000.0  # ADC units for a significant shift
    activity_threshold_percent: float = 40.0  # Normalized % above baseline counted as activity

    # IR-DC calibration convenience
    calibration_window_seconds: float = 15.0
    calibration_min_samples: int = 500
    calibration_max_cv: float = 1.5

    # Heart-rate band
    hr_low_cutoff: float = 0.5  # Hz (30 BPM)
    hr_high_cutoff: float = 8.0  # Hz
    hr_filter_order: int = 4
    min_bpm: int = 40
    max_bpm: int = 180

    # Batch (zero-phase) heart-rate processor
    hr_min_buffer_seconds: float = 3.0
    hr_max_buffer_seconds: float = 10.0
    min_peak_distance_seconds: float = 0.4  # Caps detection at 150 BPM
    peak_prominence_factor: float = 0.5  # x stddev
    min_signal_std: float = 1.0  # Below this the signal is treated as flat
    reliable_quality: float = 0.5

    # Adaptive (streaming) heart-rate calculator
    adaptive_window_seconds: float = 3.0
    adaptive_highpass_alpha: float = 0.05
    adaptive_lowpass_alpha: float = 0.15
    adaptive_threshold_factor: float = 0.6  # Threshold = mean + factor x stddev
    adaptive_min_interval: float = 0.33  # Seconds between beats (180 BPM)
    adaptive_max_interval: float = 1.5  # Seconds between beats (40 BPM)
    adaptive_reliable_quality: float = 0.6

    def _samples(self, seconds: float) -> int:
        return max(1, int(round(seconds * self.sample_rate)))

    @property
    def dc_buffer_samples(self) -> int:
        return self._samples(self.dc_buffer_seconds)

    @property
    def rolling_window_samples(self) -> int:
        return self._samples(self.rolling_window_seconds)

    @property
    def reference_window_samples(self) -> int:
        return self._samples(self.reference_window_seconds)

    @property
    def calibration_window_samples(self) -> int:
        return self._samples(self.calibration_window_seconds)

    @property
    def hr_min_buffer_samples(self) -> int:
        return self._samples(self.hr_min_buffer_seconds)

    @property
    def hr_max_buffer_samples(self) -> int:
        return self._samples(self.hr_max_buffer_seconds)

    @property
    def min_peak_distance_samples(self) -> int:
        return int(self.min_peak_distance_seconds * self.sample_rate)

    @property
    def adaptive_window_samples(self) -> int:
        return self._samples(self.adaptive_window_seconds)

    @classmethod
    def for_sample_rate(cls, sample_rate: float) -> 'SignalConfig':
        """
        Create a configuration for a stream sampled at a different rate.

        All windows are expressed in seconds, so only the rate changes.

        Args:
            sample_rate: Sampling frequency in Hz

        Returns:
            SignalConfig with the given sample_rate.
        """
        if sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {sample_rate}")
        return cls(sample_rate=sample_rate)
