"""
Metric History and Record Tests
"""

import pytest

from musclewatch.events import MetricHistory
from musclewatch.models import (
    AccelerometerSample,
    BatteryData,
    BatteryStatus,
    DeviceRecordingState,
    EventType,
    MuscleActivityEvent,
    StateTransitionEvent,
    elapsed_ms,
    state_counts,
    time_in_states,
)


def test_history_prunes_relative_to_newest_entry():
    history = MetricHistory(retention_seconds=240.0)
    history.add(70, 0.0)
    history.add(71, 100.0)
    history.add(72, 300.0)

    assert [value for _, value in history] == [71, 72]
    assert len(history) == 2


def test_history_keeps_time_order_for_late_entries():
    history = MetricHistory(retention_seconds=240.0)
    history.add(70, 10.0)
    history.add(72, 30.0)
    history.add(71, 20.0)

    assert [t for t, _ in history] == [10.0, 20.0, 30.0]
    assert history.latest == 72


def test_history_queries():
    history = MetricHistory(retention_seconds=240.0)
    history.add(60.0, 5.0)
    history.add(95.0, 50.0)

    assert history.latest_at(4.0) is None
    assert history.latest_at(5.0) == 60.0
    assert history.latest_at(49.9) == 60.0
    assert history.latest_at(100.0) == 95.0

    assert history.any_within(60.0, 20.0, lambda v: v >= 70)
    assert not history.any_within(40.0, 30.0, lambda v: v >= 70)
    assert not history.any_within(300.0, 180.0, lambda v: True)

    history.clear()
    assert len(history) == 0


def _event(start, end):
    return MuscleActivityEvent(
        event_number=1,
        event_type=EventType.ACTIVITY,
        start_timestamp=start,
        end_timestamp=end,
        start_ir=150000,
        end_ir=150000,
        average_ir=150000.0,
        start_normalized=50.0,
        end_normalized=50.0,
        average_normalized=50.0,
        baseline=100000.0,
        accel_x=3,
        accel_y=4,
    )


def test_event_duration_formatting():
    assert _event(0.0, 0.85).formatted_duration == '850ms'
    assert _event(0.0, 3.24).formatted_duration == '3.2s'
    assert _event(0.0, 125.0).formatted_duration == '2m 5s'
    assert _event(10.0, 12.5).duration_ms == 2500
    assert _event(0.0, 1.0).accelerometer_magnitude == pytest.approx(5.0)


def test_accelerometer_magnitude_in_g():
    sample = AccelerometerSample(x=0, y=0, z=16384, timestamp=0.0)
    assert sample.magnitude_g == pytest.approx(1.0)


def test_battery_status_buckets():
    def status(pct):
        return BatteryData(millivolts=3700, percentage=pct).status

    assert status(5) is BatteryStatus.CRITICAL
    assert status(15) is BatteryStatus.LOW
    assert status(30) is BatteryStatus.MEDIUM
    assert status(79) is BatteryStatus.GOOD
    assert status(80) is BatteryStatus.EXCELLENT
    assert BatteryData(millivolts=3100, percentage=8).needs_charging


def test_state_transition_event_helpers():
    event = StateTransitionEvent(
        timestamp=10.0,
        state=DeviceRecordingState.ACTIVITY,
        previous_state=DeviceRecordingState.POSITIONED,
        ir_value=150000,
        baseline=100000.0,
        accel_z=-16384,
    )
    assert event.normalized_ir_percent == pytest.approx(50.0)
    assert event.accelerometer_magnitude_g == pytest.approx(1.0)

    uncalibrated = StateTransitionEvent(
        timestamp=0.0, state=DeviceRecordingState.POSITIONED, previous_state=None, ir_value=1
    )
    assert uncalibrated.normalized_ir_percent is None


def test_time_in_states_and_counts():
    def at(t, state):
        return StateTransitionEvent(timestamp=t, state=state, previous_state=None, ir_value=0)

    events = [
        at(0.0, DeviceRecordingState.POSITIONED),
        at(10.0, DeviceRecordingState.ACTIVITY),
        at(15.0, DeviceRecordingState.POSITIONED),
    ]
    totals = time_in_states(events, end_timestamp=20.0)

    assert totals[DeviceRecordingState.POSITIONED] == pytest.approx(15.0)
    assert totals[DeviceRecordingState.ACTIVITY] == pytest.approx(5.0)
    assert totals[DeviceRecordingState.DATA_STREAMING] == 0.0

    counts = state_counts(events)
    assert counts[DeviceRecordingState.POSITIONED] == 2
    assert counts[DeviceRecordingState.ACTIVITY] == 1


def test_elapsed_ms_is_independent_of_time_origin():
    spans = {elapsed_ms(k / 50.0, (k + 50) / 50.0) for k in range(1000)}
    assert spans == {1000.0}
    assert elapsed_ms(1.0, 1.0005) == 0.5
