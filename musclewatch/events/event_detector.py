"""
Muscle Activity Event Detector
Classifies the calibrated IR stream into Activity / Rest intervals

Per sample:
1. Normalize against the calibration baseline (percent above baseline)
2. Candidate label = Activity above the threshold, otherwise Rest
3. A candidate different from the open event starts a pending crossing;
   once the same candidate is still present debounce_ms later, the open
   event closes at the pending crossing's first sample (backdated) and a
   new event opens there
4. Closed events shorter than minimum_event_duration_ms are dropped;
   every other event is emitted with a validity tag derived from recent
   HR / SpO2 / perfusion-index readings

The interval bookkeeping lives in pure functions (advance, close_event)
over immutable state so boundary logic can be exercised directly.
"""

import logging
import queue
from dataclasses import dataclass, replace
from typing import Callable, Optional, Tuple

from ..calibration import CalibrationManager
from ..models import EventType, MuscleActivityEvent, SleepState, elapsed_ms
from .config import DetectionMode, EventDetectorConfig
from .history import MetricHistory

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Detector state
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SampleSnapshot:
    timestamp: float
    ir: int
    normalized: Optional[float]
    accel_x: int = 0
    accel_y: int = 0
    accel_z: int = 0
    temperature: Optional[float] = None


@dataclass(frozen=True)
class PendingCrossing:
    label: EventType
    start: SampleSnapshot


@dataclass(frozen=True)
class OpenEvent:
    """An event in progress with its running sums"""

    label: EventType
    start: SampleSnapshot
    last: SampleSnapshot
    ir_sum: float
    normalized_sum: Optional[float]
    sample_count: int
    pending: Optional[PendingCrossing] = None


@dataclass(frozen=True)
class ClosedSpan:
    label: EventType
    start: SampleSnapshot
    end: SampleSnapshot
    average_ir: float
    average_normalized: Optional[float]
    sample_count: int

    @property
    def duration_ms(self) -> float:
        return elapsed_ms(self.start.timestamp, self.end.timestamp)


def _add(total: Optional[float], value: Optional[float]) -> Optional[float]:
    if total is None or value is None:
        return None
    return total + value


def open_event(label: EventType, start: SampleSnapshot) -> OpenEvent:
    return OpenEvent(
        label=label,
        start=start,
        last=start,
        ir_sum=float(start.ir),
        normalized_sum=start.normalized,
        sample_count=1,
    )


def fold_sample(event: OpenEvent, snapshot: SampleSnapshot) -> OpenEvent:
    return replace(
        event,
        last=snapshot,
        ir_sum=event.ir_sum + snapshot.ir,
        normalized_sum=_add(event.normalized_sum, snapshot.normalized),
        sample_count=event.sample_count + 1,
    )


def close_event(event: OpenEvent, end: SampleSnapshot) -> ClosedSpan:
    """Close an open event at the given boundary sample"""
    count = max(1, event.sample_count)
    average_normalized = None
    if event.normalized_sum is not None:
        average_normalized = event.normalized_sum / count
    return ClosedSpan(
        label=event.label,
        start=event.start,
        end=end,
        average_ir=event.ir_sum / count,
        average_normalized=average_normalized,
        sample_count=event.sample_count,
    )


def advance(
        event: Optional[OpenEvent],
        snapshot: SampleSnapshot,
        candidate: EventType,
        config: EventDetectorConfig
) -> Tuple[OpenEvent, Optional[ClosedSpan]]:
    """
    Apply one classified sample to the detector state

    Args:
        event: Open event, or None when no event has started
        snapshot: The new sample
        candidate: Label the sample classifies as
        config: Debounce settings

    Returns:
        (new open event, span closed by this sample or None)
    """
    if event is None:
        return open_event(candidate, snapshot), None

    if candidate == event.label:
        return replace(fold_sample(event, snapshot), pending=None), None

    pending = event.pending
    if pending is not None and pending.label == candidate:
        elapsed = elapsed_ms(pending.start.timestamp, snapshot.timestamp)
        if elapsed >= config.debounce_ms:
            closed = close_event(event, pending.start)

            # Samples between the boundary and now were folded into the
            # closed event; credit an estimate of them to the new one
            credited = config.credited_debounce_samples
            ir_estimate = (pending.start.ir + snapshot.ir) / 2.0
            normalized_estimate = None
            if pending.start.normalized is not None and snapshot.normalized is not None:
                normalized_estimate = (pending.start.normalized + snapshot.normalized) / 2.0

            new_event = OpenEvent(
                label=candidate,
                start=pending.start,
                last=snapshot,
                ir_sum=ir_estimate * credited,
                normalized_sum=None if normalized_estimate is None else normalized_estimate * credited,
                sample_count=credited,
            )
            return new_event, closed
        return fold_sample(event, snapshot), None

    restarted = PendingCrossing(label=candidate, start=snapshot)
    return replace(fold_sample(event, snapshot), pending=restarted), None


# ---------------------------------------------------------------------------
# Detector
# ---------------------------------------------------------------------------

class EventDetector:
    """
    Muscle-activity event detector for one device stream

    Emits MuscleActivityEvent records through on_event_detected and, when
    given, an output queue. Not safe for concurrent calls.
    """

    def __init__(
            self,
            config: Optional[EventDetectorConfig] = None,
            calibration: Optional[CalibrationManager] = None,
            on_event_detected: Optional[Callable[[MuscleActivityEvent], None]] = None,
            output_queue: Optional[queue.Queue] = None
    ):
        """
        Initialize event detector

        Args:
            config: Detector configuration
            calibration: Calibration manager supplying the baseline (a
                private one is created when omitted)
            on_event_detected: Called for every emitted event
            output_queue: Receives every emitted event
        """
        self.config = config if config else EventDetectorConfig()
        self.calibration = calibration if calibration else CalibrationManager()
        self.on_event_detected = on_event_detected
        self.output_queue = output_queue

        retention = self.config.history_retention_seconds
        self._hr_history = MetricHistory(retention)
        self._spo2_history = MetricHistory(retention)
        self._pi_history = MetricHistory(retention)
        self._sleep_history = MetricHistory(retention)
        self._temperature_history = MetricHistory(retention)

        self._event: Optional[OpenEvent] = None
        self._last_timestamp: Optional[float] = None
        self._event_counter = 0
        self._reset_counters()

        logger.info(
            f"Event detector initialized ({self.config.mode.value}, "
            f"debounce={self.config.debounce_ms:.0f}ms, "
            f"min duration={self.config.minimum_event_duration_ms:.0f}ms)"
        )

    def _reset_counters(self):
        self.samples_processed = 0
        self.samples_discarded = 0
        self.samples_calibrating = 0
        self.events_emitted = 0
        self.events_filtered = 0
        self.valid_events = 0
        self.invalid_events = 0

    # ------------------------------------------------------------------
    # Calibration passthrough
    # ------------------------------------------------------------------

    def start_calibration(self, timestamp: Optional[float] = None):
        self.calibration.start_calibration(timestamp)

    def cancel_calibration(self):
        self.calibration.cancel_calibration()

    @property
    def is_calibrated(self) -> bool:
        return self.calibration.is_calibrated

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def process_sample(
            self,
            ir_value: int,
            timestamp: float,
            accel_x: int = 0,
            accel_y: int = 0,
            accel_z: int = 0,
            temperature: Optional[float] = None
    ) -> Optional[MuscleActivityEvent]:
        """
        Process one PPG IR sample

        Args:
            ir_value: Raw IR ADC value
            timestamp: Sample time in seconds
            accel_x, accel_y, accel_z: Latest accelerometer reading
            temperature: Latest skin temperature (falls back to history)

        Returns:
            The event closed by this sample, if one was emitted
        """
        if self.calibration.is_calibrating:
            self.calibration.add_calibration_sample(ir_value, timestamp)
            self.samples_calibrating += 1
            return None

        if self._last_timestamp is not None and timestamp < self._last_timestamp:
            self.samples_discarded += 1
            logger.debug(f"Discarding out-of-order sample at {timestamp:.3f}")
            return None

        normalized = self.calibration.normalize(ir_value)
        if self.config.mode is DetectionMode.ABSOLUTE:
            candidate = EventType.ACTIVITY if ir_value > self.config.absolute_threshold else EventType.REST
        elif normalized is None:
            self.samples_discarded += 1
            return None
        else:
            candidate = EventType.ACTIVITY if normalized > self.config.threshold_percent else EventType.REST

        self.samples_processed += 1
        self._last_timestamp = timestamp

        if temperature is None:
            temperature = self._temperature_history.latest_at(timestamp)
        snapshot = SampleSnapshot(
            timestamp=timestamp,
            ir=ir_value,
            normalized=normalized,
            accel_x=accel_x,
            accel_y=accel_y,
            accel_z=accel_z,
            temperature=temperature,
        )

        self._event, closed = advance(self._event, snapshot, candidate, self.config)
        if closed is None:
            return None
        return self._emit(closed)

    def finalize_current_event(self, timestamp: Optional[float] = None) -> Optional[MuscleActivityEvent]:
        """
        Force-close the open event (e.g. when a session stops)

        Args:
            timestamp: End time; defaults to the last processed sample

        Returns:
            The emitted event, or None if nothing was open or it was too short
        """
        if self._event is None:
            return None

        end = self._event.last
        if timestamp is not None:
            end = replace(end, timestamp=timestamp)
        closed = close_event(self._event, end)
        self._event = None
        return self._emit(closed)

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

    def update_sleep(self, state: SleepState, timestamp: float):
        if state is not SleepState.UNKNOWN:
            self._sleep_history.add(state, timestamp)

    def update_temperature(self, celsius: float, timestamp: float):
        if self.config.min_valid_temperature <= celsius <= self.config.max_valid_temperature:
            self._temperature_history.add(celsius, timestamp)
        else:
            logger.debug(f"Ignoring out-of-range temperature {celsius:.2f}°C")

    def is_device_positioned(self, timestamp: float) -> bool:
        """
        Skin contact evidence within the validation window ending at timestamp

        Any positive HR, SpO2 >= 70% or perfusion index >= 0.001 counts.
        """
        window = self.config.validation_window_seconds
        return (
            self._hr_history.any_within(timestamp, window, lambda v: v > 0)
            or self._spo2_history.any_within(
                timestamp, window, lambda v: v >= self.config.min_valid_spo2)
            or self._pi_history.any_within(
                timestamp, window, lambda v: v >= self.config.min_valid_perfusion_index)
        )

    # ------------------------------------------------------------------
    # Emission
    # ------------------------------------------------------------------

    def _emit(self, closed: ClosedSpan) -> Optional[MuscleActivityEvent]:
        if closed.duration_ms < self.config.minimum_event_duration_ms:
            self.events_filtered += 1
            logger.debug(
                f"Dropped {closed.label.value} event shorter than minimum "
                f"({closed.duration_ms:.0f}ms)"
            )
            return None

        end_time = closed.end.timestamp
        is_valid = self.is_device_positioned(end_time)

        self._event_counter += 1
        event = MuscleActivityEvent(
            event_number=self._event_counter,
            event_type=closed.label,
            start_timestamp=closed.start.timestamp,
            end_timestamp=end_time,
            start_ir=closed.start.ir,
            end_ir=closed.end.ir,
            average_ir=closed.average_ir,
            start_normalized=closed.start.normalized,
            end_normalized=closed.end.normalized,
            average_normalized=closed.average_normalized,
            baseline=self.calibration.baseline,
            accel_x=closed.start.accel_x,
            accel_y=closed.start.accel_y,
            accel_z=closed.start.accel_z,
            temperature=closed.start.temperature,
            heart_rate=self._hr_history.latest_at(end_time),
            spo2=self._spo2_history.latest_at(end_time),
            sleep_state=self._sleep_history.latest_at(end_time),
            is_valid=is_valid,
        )

        self.events_emitted += 1
        if is_valid:
            self.valid_events += 1
        else:
            self.invalid_events += 1

        logger.debug(
            f"Event #{event.event_number} {event.event_type.value} "
            f"{event.formatted_duration} valid={is_valid}"
        )

        if self.on_event_detected:
            self.on_event_detected(event)
        if self.output_queue is not None:
            self.output_queue.put(event)
        return event

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    @property
    def current_event_type(self) -> Optional[EventType]:
        return self._event.label if self._event else None

    @property
    def has_pending_crossing(self) -> bool:
        return self._event is not None and self._event.pending is not None

    @property
    def statistics(self) -> dict:
        return {
            'samples_processed': self.samples_processed,
            'samples_discarded': self.samples_discarded,
            'samples_calibrating': self.samples_calibrating,
            'events_emitted': self.events_emitted,
            'events_filtered': self.events_filtered,
            'valid_events': self.valid_events,
            'invalid_events': self.invalid_events,
            'current_event': self.current_event_type.value if self._event else None,
            'calibration': self.calibration.state.status_text,
        }

    def reset(self):
        """Clear event state, histories and counters; calibration is kept"""
        self._event = None
        self._last_timestamp = None
        self._event_counter = 0
        self._reset_counters()
        for history in (self._hr_history, self._spo2_history, self._pi_history,
                        self._sleep_history, self._temperature_history):
            history.clear()

    def full_reset(self):
        self.reset()
        self.calibration.reset()

    def __repr__(self):
        return (
            f"<EventDetector(events={self.events_emitted}, "
            f"current={self.current_event_type.value if self._event else None}, "
            f"{self.calibration.state.status_text})>"
        )
