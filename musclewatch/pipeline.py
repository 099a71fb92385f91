"""
musclewatch - Sensor Pipeline
==============================
Wires decoded BLE packets into the detection engine for one device.

Usage:
    pipeline = SensorPipeline()
    pipeline.start_calibration()
    # ... feed packets while the wearer keeps still ...
    pipeline.start()
    pipeline.handle_ppg_packet(data)
    events = pipeline.drain_events()
    summary = pipeline.stop()

Data flow:
    PPG packet   -> EventDetector + StateTransitionDetector (per sample)
                 -> PPGHeartRateProcessor (per packet) -> HR side channel
    Accel packet -> latest motion snapshot
    Temp packet  -> latest temperature + event detector history
    Battery      -> latest battery snapshot

Failure policy:
    Malformed packets are logged, counted and dropped. The session
    continues with the next packet.
"""

import logging
import queue
from dataclasses import dataclass
from typing import List, Optional

from .ble import (
    ParseResult,
    parse_accelerometer_packet,
    parse_battery_packet,
    parse_ppg_packet,
    parse_temperature_packet,
)
from .calibration import CalibrationConfig, CalibrationManager
from .clock import SampleClock
from .dsp import PPGHeartRateProcessor, SignalConfig
from .events import (
    EventDetector,
    EventDetectorConfig,
    StateDetectorConfig,
    StateTransitionDetector,
)
from .models import (
    AccelerometerSample,
    BatteryData,
    EventType,
    MuscleActivityEvent,
    SleepState,
    StateTransitionEvent,
)

logger = logging.getLogger(__name__)


# Nominal stored size of one record, used for the memory reduction figure
EVENT_RECORD_BYTES = 250
SAMPLE_RECORD_BYTES = 100


@dataclass(frozen=True)
class SessionSummary:
    duration_seconds: float
    ppg_samples: int
    accelerometer_samples: int
    total_events: int
    valid_events: int
    invalid_events: int
    activity_events: int
    rest_events: int
    state_transitions: int
    packets_rejected: int

    @property
    def memory_reduction_percent(self) -> float:
        if self.ppg_samples == 0:
            return 0.0
        event_bytes = self.total_events * EVENT_RECORD_BYTES
        sample_bytes = self.ppg_samples * SAMPLE_RECORD_BYTES
        return (1.0 - event_bytes / sample_bytes) * 100.0


class SensorPipeline:
    """
    Owns the detection engine for a single device session.

    Responsibilities:
      - Decode PPG / accelerometer / temperature / battery packets
      - Feed IR samples to both detectors and green samples to HR
      - Keep the latest motion, temperature, battery and biometric readings
      - Assemble StateTransitionEvent snapshots from detector transitions
      - Summarise the session on stop()
    """

    def __init__(
        self,
        signal_config: Optional[SignalConfig] = None,
        event_config: Optional[EventDetectorConfig] = None,
        state_config: Optional[StateDetectorConfig] = None,
        calibration_config: Optional[CalibrationConfig] = None,
        clock: Optional[SampleClock] = None,
    ):
        """
        Args:
            signal_config      : Filter / HR parameters
            event_config       : Event detector parameters
            state_config       : State detector parameters
            calibration_config : Shared by both detectors' calibration managers
            clock              : Notification clock for packets without a time
        """
        self.clock = clock if clock else SampleClock()

        self._event_queue: queue.Queue = queue.Queue()
        self._transition_queue: queue.Queue = queue.Queue()

        self.event_detector = EventDetector(
            config=event_config,
            calibration=CalibrationManager(calibration_config),
            output_queue=self._event_queue,
        )
        self.state_detector = StateTransitionDetector(
            config=state_config,
            calibration=CalibrationManager(calibration_config),
            output_queue=self._transition_queue,
        )
        self.heart_rate = PPGHeartRateProcessor(signal_config)

        # Latest readings used for snapshots
        self._accel: Optional[AccelerometerSample] = None
        self._temperature: Optional[float] = None
        self._battery: Optional[BatteryData] = None
        self._heart_rate: Optional[float] = None
        self._spo2: Optional[float] = None
        self._perfusion_index: Optional[float] = None

        self._events: List[MuscleActivityEvent] = []
        self._undrained_events: List[MuscleActivityEvent] = []
        self._state_events: List[StateTransitionEvent] = []
        self._undrained_state_events: List[StateTransitionEvent] = []

        self._active = False
        self._start_time: Optional[float] = None
        self._last_time: Optional[float] = None

        self.ppg_samples = 0
        self.accelerometer_samples = 0
        self.packets_rejected = 0

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        return self._active

    def start(self, timestamp: Optional[float] = None):
        """
        Begin a recording session. Calibration is kept; events, state and
        counters from any earlier session are cleared.
        """
        self.event_detector.reset()
        self.state_detector.reset()
        self.heart_rate.reset()

        self._events = []
        self._undrained_events = []
        self._state_events = []
        self._undrained_state_events = []
        self.ppg_samples = 0
        self.accelerometer_samples = 0
        self.packets_rejected = 0

        self._start_time = timestamp if timestamp is not None else self.clock.now()
        self._last_time = self._start_time
        self._active = True
        logger.info("✓ Recording session started")

    def stop(self, timestamp: Optional[float] = None) -> SessionSummary:
        """
        Finalise the open event and summarise the session.
        """
        end_time = timestamp if timestamp is not None else self._last_time
        self.event_detector.finalize_current_event(end_time)
        self._collect_events()
        self._active = False

        summary = self.summary(end_time)
        logger.info(
            f"✓ Recording session stopped: {summary.total_events} events "
            f"({summary.valid_events} valid), "
            f"{summary.memory_reduction_percent:.1f}% memory reduction"
        )
        return summary

    def start_calibration(self, timestamp: Optional[float] = None):
        self.event_detector.start_calibration(timestamp)
        self.state_detector.start_calibration(timestamp)

    def cancel_calibration(self):
        self.event_detector.cancel_calibration()
        self.state_detector.cancel_calibration()

    @property
    def baseline(self) -> Optional[float]:
        return self.event_detector.calibration.baseline

    # -----------------------------------------------------------------------
    # Packets
    # -----------------------------------------------------------------------

    def handle_ppg_packet(self, data: bytes, notification_time: Optional[float] = None) -> ParseResult:
        """
        Decode a PPG packet and run every sample through both detectors.

        Returns:
            The decode result (failures are counted and logged)
        """
        result = parse_ppg_packet(data, self._notification_time(notification_time))
        if not result.is_success:
            return self._reject('PPG', result)

        accel = self._accel
        for sample in result.value.samples:
            self.ppg_samples += 1
            self._last_time = sample.timestamp
            self.event_detector.process_sample(
                sample.ir,
                sample.timestamp,
                accel.x if accel else 0,
                accel.y if accel else 0,
                accel.z if accel else 0,
                self._temperature,
            )
            if self.state_detector.process_sample(sample.ir, sample.timestamp):
                self._collect_transitions()

        hr = self.heart_rate.process_batch(result.value.samples)
        if hr is not None and hr.is_valid:
            self.update_hr(hr.bpm, result.value.samples[-1].timestamp)

        self._collect_events()
        return result

    def handle_accelerometer_packet(
        self,
        data: bytes,
        notification_time: Optional[float] = None,
    ) -> ParseResult:
        result = parse_accelerometer_packet(data, self._notification_time(notification_time))
        if not result.is_success:
            return self._reject('accelerometer', result)

        samples = result.value.samples
        self.accelerometer_samples += len(samples)
        self._accel = samples[-1]
        return result

    def handle_temperature_packet(self, data: bytes, notification_time: Optional[float] = None) -> ParseResult:
        result = parse_temperature_packet(data)
        if not result.is_success:
            return self._reject('temperature', result)

        celsius = result.value.celsius
        self._temperature = celsius
        self.event_detector.update_temperature(celsius, self._notification_time(notification_time))
        return result

    def handle_battery_packet(self, data: bytes, notification_time: Optional[float] = None) -> ParseResult:
        result = parse_battery_packet(data, self._notification_time(notification_time))
        if not result.is_success:
            return self._reject('battery', result)

        self._battery = result.value
        if self._battery.needs_charging:
            logger.warning(f"⚠ Battery low: {self._battery.percentage}%")
        return result

    def _notification_time(self, notification_time: Optional[float]) -> float:
        return notification_time if notification_time is not None else self.clock.now()

    def _reject(self, packet_type: str, result: ParseResult) -> ParseResult:
        self.packets_rejected += 1
        logger.warning(f"⚠ Dropped {packet_type} packet: {result.error_message}")
        return result

    # -----------------------------------------------------------------------
    # Biometric side channel
    # -----------------------------------------------------------------------

    def update_hr(self, bpm: float, timestamp: float):
        self._heart_rate = bpm
        self.event_detector.update_hr(bpm, timestamp)
        self.state_detector.update_hr(bpm, timestamp)

    def update_spo2(self, percent: float, timestamp: float):
        self._spo2 = percent
        self.event_detector.update_spo2(percent, timestamp)
        self.state_detector.update_spo2(percent, timestamp)

    def update_perfusion_index(self, value: float, timestamp: float):
        self._perfusion_index = value
        self.event_detector.update_perfusion_index(value, timestamp)
        self.state_detector.update_perfusion_index(value, timestamp)

    def update_sleep(self, state: SleepState, timestamp: float):
        self.event_detector.update_sleep(state, timestamp)

    # -----------------------------------------------------------------------
    # Output
    # -----------------------------------------------------------------------

    def _collect_events(self):
        while True:
            try:
                event = self._event_queue.get_nowait()
            except queue.Empty:
                break
            self._events.append(event)
            self._undrained_events.append(event)

    def _collect_transitions(self):
        while True:
            try:
                transition = self._transition_queue.get_nowait()
            except queue.Empty:
                break

            accel = self._accel
            state_event = StateTransitionEvent(
                timestamp=transition.timestamp,
                state=transition.new,
                previous_state=transition.previous,
                ir_value=self.state_detector.last_ir_value or 0,
                baseline=self.state_detector.calibration.baseline,
                heart_rate=self._heart_rate,
                spo2=self._spo2,
                perfusion_index=self._perfusion_index,
                temperature=self._temperature,
                accel_x=accel.x if accel else 0,
                accel_y=accel.y if accel else 0,
                accel_z=accel.z if accel else 0,
                battery_percentage=self._battery.percentage if self._battery else None,
            )
            self._state_events.append(state_event)
            self._undrained_state_events.append(state_event)

    def drain_events(self) -> List[MuscleActivityEvent]:
        """Events emitted since the previous call"""
        self._collect_events()
        drained, self._undrained_events = self._undrained_events, []
        return drained

    def drain_state_events(self) -> List[StateTransitionEvent]:
        self._collect_transitions()
        drained, self._undrained_state_events = self._undrained_state_events, []
        return drained

    @property
    def events(self) -> List[MuscleActivityEvent]:
        return list(self._events)

    @property
    def state_events(self) -> List[StateTransitionEvent]:
        return list(self._state_events)

    def summary(self, end_time: Optional[float] = None) -> SessionSummary:
        end = end_time if end_time is not None else self._last_time
        duration = 0.0
        if self._start_time is not None and end is not None:
            duration = max(0.0, end - self._start_time)

        return SessionSummary(
            duration_seconds=duration,
            ppg_samples=self.ppg_samples,
            accelerometer_samples=self.accelerometer_samples,
            total_events=len(self._events),
            valid_events=sum(1 for e in self._events if e.is_valid),
            invalid_events=sum(1 for e in self._events if not e.is_valid),
            activity_events=sum(1 for e in self._events if e.event_type is EventType.ACTIVITY),
            rest_events=sum(1 for e in self._events if e.event_type is EventType.REST),
            state_transitions=len(self._state_events),
            packets_rejected=self.packets_rejected,
        )

    def get_status(self) -> dict:
        """
        Return a summary of pipeline state for logging / UI display.
        """
        return {
            'active'           : self._active,
            'calibration'      : self.event_detector.calibration.state.status_text,
            'device_state'     : self.state_detector.current_state.value,
            'current_event'    : (
                self.event_detector.current_event_type.value
                if self.event_detector.current_event_type else None
            ),
            'heart_rate'       : self._heart_rate,
            'battery'          : self._battery.percentage if self._battery else None,
            'ppg_samples'      : self.ppg_samples,
            'events'           : len(self._events),
            'packets_rejected' : self.packets_rejected,
            'clock'            : self.clock.get_stats(),
        }

    # -----------------------------------------------------------------------
    # Dunder helpers
    # -----------------------------------------------------------------------

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()

    def __repr__(self):
        return (
            f"<SensorPipeline("
            f"active={self._active}, "
            f"state={self.state_detector.current_state.value}, "
            f"events={len(self._events)})>"
        )
