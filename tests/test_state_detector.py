"""
State Transition Detector Tests
Positioning evidence and per-edge debounce
"""

import queue

import pytest

from musclewatch.events import StateDetectorConfig, StateTransitionDetector
from musclewatch.events.state_detector import StateMachine, next_state
from musclewatch.models import DeviceRecordingState, StateTransition

STREAMING = DeviceRecordingState.DATA_STREAMING
POSITIONED = DeviceRecordingState.POSITIONED
ACTIVITY = DeviceRecordingState.ACTIVITY

REST_IR = 100000
ACTIVE_IR = 150000


def test_starts_in_data_streaming(state_detector):
    assert state_detector.current_state is STREAMING
    assert state_detector.pending_target is None


def test_no_positioning_evidence_stays_streaming(state_detector):
    for i in range(500):
        state_detector.process_sample(REST_IR, i / 50.0)
    assert state_detector.current_state is STREAMING
    assert state_detector.transitions == []


def test_commit_after_debounce_plus_one_ms(state_detector):
    state_detector.update_hr(72, 0.0)

    assert state_detector.process_sample(REST_IR, 0.0) is None
    assert state_detector.pending_target is POSITIONED
    assert state_detector.process_sample(REST_IR, 1.999) is None

    transition = state_detector.process_sample(REST_IR, 2.001)
    assert transition == StateTransition(STREAMING, POSITIONED, 2.001)
    assert state_detector.current_state is POSITIONED

    state_detector.process_sample(REST_IR, 2.5)
    state_detector.process_sample(REST_IR, 3.0)
    assert state_detector.transitions == [(STREAMING, POSITIONED, 2.001)]
    assert state_detector.transition_count == 1


def test_toggling_faster_than_debounce_never_commits(state_detector):
    state_detector.update_hr(72, 0.0)

    for block in range(20):
        ir = REST_IR if block % 2 == 0 else ACTIVE_IR
        for i in range(25):
            state_detector.process_sample(ir, block * 0.5 + i / 50.0)

    assert state_detector.current_state is STREAMING
    assert state_detector.transitions == []


def test_toggling_from_positioned_never_commits(state_detector):
    state_detector.update_hr(72, 0.0)
    state_detector.process_sample(REST_IR, 0.0)
    state_detector.process_sample(REST_IR, 2.0)
    assert state_detector.current_state is POSITIONED

    for block in range(20):
        ir = ACTIVE_IR if block % 2 == 0 else REST_IR
        for i in range(25):
            state_detector.process_sample(ir, 2.02 + block * 0.5 + i / 50.0)

    assert state_detector.current_state is POSITIONED
    assert len(state_detector.transitions) == 1


def test_streaming_to_activity_uses_summed_debounce(state_detector):
    state_detector.update_hr(72, 0.0)

    state_detector.process_sample(ACTIVE_IR, 0.0)
    assert state_detector.process_sample(ACTIVE_IR, 2.9) is None

    transition = state_detector.process_sample(ACTIVE_IR, 3.0)
    assert transition.previous is STREAMING
    assert transition.new is ACTIVITY


def test_expired_evidence_returns_to_streaming(state_detector):
    state_detector.update_hr(72, 0.0)
    state_detector.process_sample(REST_IR, 0.0)
    state_detector.process_sample(REST_IR, 2.0)

    state_detector.process_sample(REST_IR, 181.0)
    assert state_detector.pending_target is STREAMING
    assert state_detector.process_sample(REST_IR, 183.5) is None

    transition = state_detector.process_sample(REST_IR, 184.0)
    assert transition.new is STREAMING


def test_other_positioning_signals(state_detector):
    assert not state_detector.is_positioned(10.0)

    state_detector.update_spo2(65.0, 1.0)
    assert not state_detector.is_positioned(10.0)

    state_detector.update_perfusion_index(0.004, 2.0)
    assert state_detector.is_positioned(10.0)
    assert not state_detector.is_positioned(1.0)


def test_activity_target_requires_calibration():
    detector = StateTransitionDetector()
    detector.update_hr(72, 0.0)
    assert detector.target_state(ACTIVE_IR, 1.0) is POSITIONED

    detector.calibration.apply_baseline(100000.0)
    assert detector.target_state(ACTIVE_IR, 1.0) is ACTIVITY
    assert detector.target_state(130000, 1.0) is POSITIONED


def test_samples_go_to_calibration_while_calibrating():
    detector = StateTransitionDetector()
    detector.update_hr(72, 0.0)
    detector.start_calibration()

    for i in range(200):
        assert detector.process_sample(REST_IR, i / 50.0) is None

    assert detector.pending_target is None
    assert detector.calibration.statistics['sample_count'] == 200


def test_output_queue_receives_transitions():
    outbox = queue.Queue()
    detector = StateTransitionDetector(output_queue=outbox)
    detector.update_spo2(98.0, 0.0)
    detector.process_sample(REST_IR, 0.0)
    detector.process_sample(REST_IR, 2.0)

    assert outbox.get_nowait() == StateTransition(STREAMING, POSITIONED, 2.0)


def test_reset_keeps_calibration(state_detector):
    state_detector.update_hr(72, 0.0)
    state_detector.process_sample(REST_IR, 0.0)
    state_detector.process_sample(REST_IR, 2.0)

    state_detector.reset()
    assert state_detector.current_state is STREAMING
    assert not state_detector.is_positioned(2.0)
    assert state_detector.calibration.is_calibrated

    state_detector.full_reset()
    assert not state_detector.calibration.is_calibrated


def test_edge_debounces():
    config = StateDetectorConfig()
    assert config.debounce_ms(STREAMING, POSITIONED) == 2000.0
    assert config.debounce_ms(POSITIONED, ACTIVITY) == 1000.0
    assert config.debounce_ms(ACTIVITY, POSITIONED) == 1000.0
    assert config.debounce_ms(POSITIONED, STREAMING) == 3000.0
    assert config.debounce_ms(STREAMING, ACTIVITY) == 3000.0
    assert config.debounce_ms(ACTIVITY, STREAMING) == 4000.0


def test_next_state_target_change_restarts_timer():
    config = StateDetectorConfig()
    machine = StateMachine()

    machine, _ = next_state(machine, POSITIONED, 0.0, config)
    machine, _ = next_state(machine, ACTIVITY, 1.5, config)
    assert machine.pending_target is ACTIVITY
    assert machine.pending_since == 1.5

    machine, transition = next_state(machine, ACTIVITY, 4.0, config)
    assert transition is None
    machine, transition = next_state(machine, ACTIVITY, 4.5, config)
    assert transition.new is ACTIVITY

    machine, _ = next_state(machine, POSITIONED, 5.0, config)
    machine, _ = next_state(machine, ACTIVITY, 5.1, config)
    assert machine.pending_target is None


def test_progress_order():
    assert STREAMING < POSITIONED < ACTIVITY
    assert sorted([ACTIVITY, STREAMING, POSITIONED]) == [STREAMING, POSITIONED, ACTIVITY]
    assert POSITIONED.is_positioned and not STREAMING.is_positioned
    assert ACTIVITY.is_active
    assert ACTIVITY.progress == 2


@pytest.mark.parametrize('offset', range(60))
def test_next_state_commits_exactly_at_debounce(offset):
    config = StateDetectorConfig()
    machine, _ = next_state(StateMachine(), POSITIONED, offset / 50.0, config)

    machine, transition = next_state(machine, POSITIONED, (offset + 100) / 50.0, config)

    assert transition is not None
    assert transition.new is POSITIONED
