"""
Event Detection Configuration
Thresholds, debounces and validity windows for both detectors
"""

from dataclasses import dataclass
from enum import Enum

from ..models import DeviceRecordingState


class DetectionMode(Enum):
    NORMALIZED = 'normalized'  # Percent above the calibration baseline
    ABSOLUTE = 'absolute'  # Raw IR against a fixed threshold, no calibration needed


@dataclass
class EventDetectorConfig:
    """Muscle-activity event detector parameters"""

    # Classification
    mode: DetectionMode = DetectionMode.NORMALIZED
    threshold_percent: float = 40.0  # Normalized % above baseline for Activity
    absolute_threshold: float = 150000.0  # Raw IR for Activity in ABSOLUTE mode

    # Timing
    debounce_ms: float = 1000.0  # Candidate must persist this long before a boundary commits
    minimum_event_duration_ms: float = 1000.0  # Shorter events are dropped
    sample_interval_ms: float = 20.0  # 50 Hz PPG

    # Validity (skin contact evidence before event end)
    validation_window_seconds: float = 180.0
    history_margin_seconds: float = 60.0
    min_valid_spo2: float = 70.0
    min_valid_perfusion_index: float = 0.001

    # Accepted skin temperature range
    min_valid_temperature: float = 32.0
    max_valid_temperature: float = 38.0

    @property
    def credited_debounce_samples(self) -> int:
        """Samples credited to an event that opens at a backdated boundary"""
        return max(1, int(round(self.debounce_ms / self.sample_interval_ms)))

    @property
    def history_retention_seconds(self) -> float:
        return self.validation_window_seconds + self.history_margin_seconds

    @classmethod
    def for_sample_rate(cls, sample_rate: float) -> 'EventDetectorConfig':
        """
        Create a configuration for a stream at another sample rate.

        Args:
            sample_rate: PPG sampling frequency in Hz

        Returns:
            EventDetectorConfig with a matching sample_interval_ms.
        """
        if sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {sample_rate}")
        return cls(sample_interval_ms=1000.0 / sample_rate)

    @classmethod
    def for_absolute_threshold(cls, threshold: float) -> 'EventDetectorConfig':
        """Raw-IR detection, usable before or without calibration"""
        return cls(mode=DetectionMode.ABSOLUTE, absolute_threshold=threshold)


@dataclass
class StateDetectorConfig:
    """Device positioning state detector parameters"""

    activity_threshold_percent: float = 40.0

    # Per-edge debounces (ms)
    streaming_to_positioned_ms: float = 2000.0
    positioned_to_activity_ms: float = 1000.0
    activity_to_positioned_ms: float = 1000.0
    positioned_to_streaming_ms: float = 3000.0

    # Positioning evidence
    validation_window_seconds: float = 180.0
    history_margin_seconds: float = 60.0
    min_heart_rate: float = 30.0
    min_spo2: float = 70.0
    min_perfusion_index: float = 0.001

    @property
    def history_retention_seconds(self) -> float:
        return self.validation_window_seconds + self.history_margin_seconds

    def debounce_ms(self, source: DeviceRecordingState, target: DeviceRecordingState) -> float:
        """
        Debounce for an ordered edge.

        DataStreaming <-> Activity has no timer of its own and passes
        through Positioned, so it costs the sum of both adjacent edges.

        Args:
            source: Current state
            target: Candidate state

        Returns:
            Debounce in milliseconds (0 for source == target)
        """
        streaming = DeviceRecordingState.DATA_STREAMING
        positioned = DeviceRecordingState.POSITIONED
        activity = DeviceRecordingState.ACTIVITY

        edges = {
            (streaming, positioned): self.streaming_to_positioned_ms,
            (positioned, activity): self.positioned_to_activity_ms,
            (activity, positioned): self.activity_to_positioned_ms,
            (positioned, streaming): self.positioned_to_streaming_ms,
            (streaming, activity): self.streaming_to_positioned_ms + self.positioned_to_activity_ms,
            (activity, streaming): self.activity_to_positioned_ms + self.positioned_to_streaming_ms,
        }
        return edges.get((source, target), 0.0)
