"""
Shared fixtures for the musclewatch test suite
Synthetic PPG signals and pre-calibrated detectors
"""

import logging
import math
import struct

import pytest

from musclewatch.calibration import CalibrationManager
from musclewatch.events import EventDetector, StateTransitionDetector

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

SAMPLE_RATE = 50.0
BASELINE = 100000.0


def pulse_wave(seconds, bpm=72.0, dc=100000.0, amplitude=2000.0, sample_rate=SAMPLE_RATE):
    """Sinusoidal stand-in for a PPG channel at the given heart rate"""
    freq = bpm / 60.0
    n = int(seconds * sample_rate)
    return [dc + amplitude * math.sin(2.0 * math.pi * freq * i / sample_rate) for i in range(n)]


def ppg_packet(frame_counter, samples):
    """Encode (red, ir, green) tuples as a PPG notification"""
    data = struct.pack('<I', frame_counter)
    for red, ir, green in samples:
        data += struct.pack('<III', red, ir, green)
    return data


def feed(detector, start, seconds, ir_value, sample_rate=SAMPLE_RATE):
    """Send a constant IR level to a detector; returns the last timestamp"""
    n = int(round(seconds * sample_rate))
    timestamp = start
    for i in range(n):
        timestamp = start + i / sample_rate
        detector.process_sample(ir_value, timestamp)
    return timestamp


@pytest.fixture
def calibrated_manager():
    manager = CalibrationManager()
    manager.apply_baseline(BASELINE)
    return manager


@pytest.fixture
def event_detector(calibrated_manager):
    events = []
    detector = EventDetector(
        calibration=calibrated_manager,
        on_event_detected=events.append,
    )
    detector.emitted = events
    return detector


@pytest.fixture
def state_detector(calibrated_manager):
    transitions = []
    detector = StateTransitionDetector(
        calibration=calibrated_manager,
        on_state_transition=lambda prev, new, ts: transitions.append((prev, new, ts)),
    )
    detector.transitions = transitions
    return detector
