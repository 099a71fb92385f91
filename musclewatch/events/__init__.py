"""
Event and State Detection for musclewatch
Debounced state machines over the calibrated IR stream

Architecture:
- EventDetector: Activity / Rest intervals with backdated boundaries,
  minimum-duration filtering and validity tagging
- StateTransitionDetector: DataStreaming / Positioned / Activity with
  per-edge debounce
- MetricHistory: owned, bounded HR / SpO2 / PI / sleep / temperature
  history used for validity and positioning

Both detectors take sample timestamps as their only clock, so recorded
sessions replay deterministically.

Usage:
    detector = EventDetector(on_event_detected=store_event)
    detector.start_calibration()
    for sample in samples:
        detector.process_sample(sample.ir, sample.timestamp)
    detector.finalize_current_event()
"""

from .config import DetectionMode, EventDetectorConfig, StateDetectorConfig
from .event_detector import EventDetector
from .history import MetricHistory
from .state_detector import StateTransitionDetector

__all__ = [
    'EventDetector',
    'StateTransitionDetector',
    'MetricHistory',
    'EventDetectorConfig',
    'StateDetectorConfig',
    'DetectionMode',
]

__version__ = '1.0.0'
