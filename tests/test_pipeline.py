"""
musclewatch - Sensor Pipeline Test
===================================
Drives SensorPipeline with synthetic BLE notifications:

  1. 16s still period at baseline IR (calibration)
  2. Session start
  3. 4s rest, 4s clench (+50% IR), 4s rest
  4. Session stop

The green channel carries a 72 BPM pulse wave throughout, so the
pipeline's own heart-rate estimate provides the skin-contact evidence
that marks events valid.
"""

import math
import struct

import pytest

from musclewatch import DeviceRecordingState, EventType, SensorPipeline
from musclewatch.ble import InsufficientData

from conftest import ppg_packet

SAMPLE_RATE = 50.0
SAMPLES_PER_PACKET = 5
REST_IR = 100000
CLENCH_IR = 150000


def _green(t):
    return int(100000 + 2000 * math.sin(2 * math.pi * 1.2 * t))


def _stream(pipeline, start, seconds, ir):
    n = int(round(seconds * SAMPLE_RATE))
    for k in range(n // SAMPLES_PER_PACKET):
        times = [start + (k * SAMPLES_PER_PACKET + j) / SAMPLE_RATE for j in range(SAMPLES_PER_PACKET)]
        samples = [(0, ir, _green(t)) for t in times]
        result = pipeline.handle_ppg_packet(ppg_packet(k, samples), notification_time=times[-1])
        assert result.is_success


@pytest.fixture
def session():
    pipeline = SensorPipeline()
    pipeline.start_calibration()
    _stream(pipeline, 0.0, 16.0, REST_IR)
    pipeline.start(timestamp=16.0)
    return pipeline


def test_calibration_through_packets(session):
    assert session.baseline == pytest.approx(REST_IR)
    assert session.state_detector.calibration.baseline == pytest.approx(REST_IR)
    assert session.get_status()['calibration'].startswith('Calibrated')


def test_session_emits_valid_events(session):
    _stream(session, 16.0, 4.0, REST_IR)
    _stream(session, 20.0, 4.0, CLENCH_IR)
    _stream(session, 24.0, 4.0, REST_IR)
    summary = session.stop(28.0)

    events = session.drain_events()
    assert [e.event_type for e in events] == [EventType.REST, EventType.ACTIVITY, EventType.REST]
    assert all(e.is_valid for e in events)
    assert events[1].start_timestamp == pytest.approx(20.0, abs=0.05)
    assert events[1].end_timestamp == pytest.approx(24.0, abs=0.05)
    assert events[1].heart_rate is not None
    assert session.drain_events() == []

    assert summary.total_events == 3
    assert summary.valid_events == 3
    assert summary.activity_events == 1
    assert summary.ppg_samples == 600
    assert summary.duration_seconds == pytest.approx(12.0)
    assert summary.memory_reduction_percent > 95.0
    assert not session.is_active


def test_session_state_transitions(session):
    _stream(session, 16.0, 4.0, REST_IR)
    _stream(session, 20.0, 4.0, CLENCH_IR)
    _stream(session, 24.0, 4.0, REST_IR)

    state_events = session.drain_state_events()
    assert [e.state for e in state_events] == [
        DeviceRecordingState.ACTIVITY,
        DeviceRecordingState.POSITIONED,
    ]
    assert state_events[0].previous_state is DeviceRecordingState.DATA_STREAMING
    assert state_events[0].normalized_ir_percent == pytest.approx(50.0, abs=1.0)
    assert state_events[0].heart_rate is not None
    assert session.state_detector.current_state is DeviceRecordingState.POSITIONED


def test_malformed_packets_are_counted():
    pipeline = SensorPipeline()
    result = pipeline.handle_ppg_packet(b'\x00\x01', notification_time=1.0)

    assert isinstance(result, InsufficientData)
    assert pipeline.packets_rejected == 1
    assert not pipeline.handle_battery_packet(struct.pack('<i', 9000), 1.0).is_success
    assert pipeline.packets_rejected == 2


def test_side_channel_packets_update_snapshots():
    pipeline = SensorPipeline()
    pipeline.handle_battery_packet(struct.pack('<i', 3600), 1.0)
    pipeline.handle_temperature_packet(struct.pack('<I', 1) + struct.pack('<h', 3620), 1.0)

    accel = struct.pack('<I', 1) + struct.pack('<hhh', 10, 20, 16000) * 2
    result = pipeline.handle_accelerometer_packet(accel, 1.0)

    assert len(result.value.samples) == 2
    assert pipeline.accelerometer_samples == 2
    status = pipeline.get_status()
    assert status['battery'] == 50
    assert status['device_state'] == 'DataStreaming'


def test_context_manager_lifecycle():
    with SensorPipeline() as pipeline:
        assert pipeline.is_active
    assert not pipeline.is_active
    assert 'SensorPipeline' in repr(pipeline)
