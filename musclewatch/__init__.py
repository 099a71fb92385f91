"""
musclewatch - Wearable PPG Event Detection Engine
Turns a continuous biosensor stream into compact semantic events

Architecture:
- ble: fixed-layout packet decoding into typed samples
- dsp: Butterworth filters, IR-DC baseline, heart-rate estimation
- calibration: still-period baseline capture gating normalization
- events: muscle-activity event detector and device state detector
- pipeline: per-device wiring of decoder, detectors and HR side channel

Only events and state transitions leave the engine; raw samples are
never stored.

Usage:
    from musclewatch import SensorPipeline

    with SensorPipeline() as pipeline:
        pipeline.handle_ppg_packet(data)
        for event in pipeline.drain_events():
            store(event)
"""

from .models import (
    AccelerometerSample,
    BatteryData,
    BatteryStatus,
    DeviceRecordingState,
    EventType,
    MuscleActivityEvent,
    PPGSample,
    SleepState,
    StateTransition,
    StateTransitionEvent,
    TemperatureReading,
)
from .pipeline import SensorPipeline, SessionSummary

__all__ = [
    'SensorPipeline',
    'SessionSummary',
    'PPGSample',
    'AccelerometerSample',
    'TemperatureReading',
    'BatteryData',
    'BatteryStatus',
    'EventType',
    'SleepState',
    'DeviceRecordingState',
    'MuscleActivityEvent',
    'StateTransition',
    'StateTransitionEvent',
]

__version__ = '1.0.0'
