"""
Device State Transition Detector
Classifies the device as DataStreaming, Positioned or Activity

Target state per sample:
- no HR >= 30, SpO2 >= 70 or PI >= 0.001 in the last 180s -> DataStreaming
- positioned, calibrated and normalized IR above 40%       -> Activity
- positioned otherwise                                      -> Positioned

A target different from the current state must persist for its edge's
debounce before it commits. The check compares the first and the latest
off-target sample only; any on-target sample in between clears it.
"""

import logging
import queue
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from ..calibration import CalibrationManager
from ..models import DeviceRecordingState, StateTransition, elapsed_ms
from .config import StateDetectorConfig
from .history import MetricHistory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StateMachine:
    current: DeviceRecordingState = DeviceRecordingState.DATA_STREAMING
    pending_target: Optional[DeviceRecordingState] = None
    pending_since: Optional[float] = None


def next_state(
        machine: StateMachine,
        target: DeviceRecordingState,
        timestamp: float,
        config: StateDetectorConfig
) -> Tuple[StateMachine, Optional[StateTransition]]:
    """
    Apply one target-state observation

    Args:
        machine: Current machine state
        target: State the latest sample points to
        timestamp: Sample time in seconds
        config: Edge debounces

    Returns:
        (new machine state, committed transition or None)
    """
    if target == machine.current:
        if machine.pending_target is None:
            return machine, None
        return StateMachine(current=machine.current), None

    if machine.pending_target != target:
        return StateMachine(current=machine.current, pending_target=target, pending_since=timestamp), None

    elapsed = elapsed_ms(machine.pending_since, timestamp)
    if elapsed < config.debounce_ms(machine.current, target):
        return machine, None

    transition = StateTransition(previous=machine.current, new=target, timestamp=timestamp)
    return StateMachine(current=target), transition


class StateTransitionDetector:
    """
    Device positioning state machine for one device stream

    Emits (previous, new, timestamp) through on_state_transition and,
    when given, a StateTransition record on the output queue.
    """

    def __init__(
            self,
            config: Optional[StateDetectorConfig] = None,
            calibration: Optional[CalibrationManager] = None,
            on_state_transition: Optional[
                Callable[[DeviceRecordingState, DeviceRecordingState, float], None]] = None,
            output_queue: Optional[queue.Queue] = None
    ):
        self.config = config if config else StateDetectorConfig()
        self.calibration = calibration if calibration else CalibrationManager()
        self.on_state_transition = on_state_transition
        self.output_queue = output_queue

        retention = self.config.history_retention_seconds
        self._hr_history = MetricHistory(retention)
        self._spo2_history = MetricHistory(retention)
        self._pi_history = MetricHistory(retention)

        self._machine = StateMachine()
        self.transition_count = 0
        self.last_ir_value: Optional[int] = None

    @property
    def current_state(self) -> DeviceRecordingState:
        return self._machine.current

    @property
    def pending_target(self) -> Optional[DeviceRecordingState]:
        return self._machine.pending_target

    # ------------------------------------------------------------------
    # Calibration passthrough
    # ------------------------------------------------------------------

    def start_calibration(self, timestamp: Optional[float] = None):
        self.calibration.start_calibration(timestamp)

    def cancel_calibration(self):
        self.calibration.cancel_calibration()

    # ------------------------------------------------------------------
    # Biometric side channel
    # ------------------------------------------------------------------

    def update_hr(self, bpm: float, timestamp: float):
        if bpm > 0:
            self._hr_history.add(bpm, timestamp)

    def update_spo2(self, percent: float, timestamp: float):
        if percent > 0:
            self._spo2_history.add(percent, timestamp)

    def update_perfusion_index(self, value: float, timestamp: float):
        if value > 0:
            self._pi_history.add(value, timestamp)

    def is_positioned(self, timestamp: float) -> bool:
        window = self.config.validation_window_seconds
        return (
            self._hr_history.any_within(
                timestamp, window, lambda v: v >= self.config.min_heart_rate)
            or self._spo2_history.any_within(
                timestamp, window, lambda v: v >= self.config.min_spo2)
            or self._pi_history.any_within(
                timestamp, window, lambda v: v >= self.config.min_perfusion_index)
        )

    def target_state(self, ir_value: float, timestamp: float) -> DeviceRecordingState:
        if not self.is_positioned(timestamp):
            return DeviceRecordingState.DATA_STREAMING

        normalized = self.calibration.normalize(ir_value)
        if normalized is not None and normalized > self.config.activity_threshold_percent:
            return DeviceRecordingState.ACTIVITY
        return DeviceRecordingState.POSITIONED

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def process_sample(self, ir_value: int, timestamp: float) -> Optional[StateTransition]:
        """
        Evaluate the device state for one IR sample

        While calibrating, the sample goes to the calibration manager only.

        Args:
            ir_value: Raw IR ADC value
            timestamp: Sample time in seconds

        Returns:
            The committed transition, if this sample completed a debounce
        """
        if self.calibration.is_calibrating:
            self.calibration.add_calibration_sample(ir_value, timestamp)
            return None

        self.last_ir_value = ir_value
        target = self.target_state(ir_value, timestamp)
        self._machine, transition = next_state(self._machine, target, timestamp, self.config)
        if transition is None:
            return None

        self.transition_count += 1
        logger.info(
            f"State {transition.previous.value} → {transition.new.value} "
            f"at {transition.timestamp:.3f}"
        )
        if self.on_state_transition:
            self.on_state_transition(transition.previous, transition.new, transition.timestamp)
        if self.output_queue is not None:
            self.output_queue.put(transition)
        return transition

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------

    def reset(self):
        """Back to DataStreaming with empty histories; calibration is kept"""
        self._machine = StateMachine()
        self.transition_count = 0
        self.last_ir_value = None
        self._hr_history.clear()
        self._spo2_history.clear()
        self._pi_history.clear()

    def full_reset(self):
        self.reset()
        self.calibration.reset()

    def __repr__(self):
        return (
            f"<StateTransitionDetector(state={self.current_state.value}, "
            f"pending={self.pending_target.value if self.pending_target else None})>"
        )
