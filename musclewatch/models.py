"""
Sensor and Event Records
Immutable sample, event and state records shared across the detection engine
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional


# Accelerometer sensitivity for the ±2g range (LSB/g)
ACCEL_LSB_PER_G = 16384.0

# Timestamps are float seconds; millisecond spans are rounded to this many
# decimals so exact sample multiples do not depend on the time origin
ELAPSED_MS_DECIMALS = 6


def elapsed_ms(start: float, end: float) -> float:
    """Milliseconds from start to end (seconds)"""
    return round((end - start) * 1000.0, ELAPSED_MS_DECIMALS)


class EventType(Enum):
    """Muscle-activity classification of a closed interval"""

    ACTIVITY = 'Activity'
    REST = 'Rest'


class SleepState(Enum):
    """Sleep state reported by an external classifier"""

    AWAKE = 'Awake'
    LIKELY_SLEEPING = 'Likely_Sleeping'
    UNKNOWN = 'Unknown'


class BatteryStatus(Enum):
    CRITICAL = 'critical'
    LOW = 'low'
    MEDIUM = 'medium'
    GOOD = 'good'
    EXCELLENT = 'excellent'


class DeviceRecordingState(Enum):
    """
    Device positioning state.

    States are ordered by progress (DataStreaming < Positioned < Activity),
    but transitions between them are not required to be monotonic.
    """

    DATA_STREAMING = 'DataStreaming'
    POSITIONED = 'Positioned'
    ACTIVITY = 'Activity'

    @property
    def progress(self) -> int:
        return _STATE_PROGRESS[self]

    @property
    def is_positioned(self) -> bool:
        return self is not DeviceRecordingState.DATA_STREAMING

    @property
    def is_active(self) -> bool:
        return self is DeviceRecordingState.ACTIVITY

    def __lt__(self, other):
        if not isinstance(other, DeviceRecordingState):
            return NotImplemented
        return self.progress < other.progress


_STATE_PROGRESS = {
    DeviceRecordingState.DATA_STREAMING: 0,
    DeviceRecordingState.POSITIONED: 1,
    DeviceRecordingState.ACTIVITY: 2,
}


# ---------------------------------------------------------------------------
# Samples
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PPGSample:
    """One optical reading (raw ADC counts) with its timestamp in seconds"""

    red: int
    ir: int
    green: int
    timestamp: float


@dataclass(frozen=True)
class AccelerometerSample:
    """One 3-axis accelerometer reading in raw sensor units"""

    x: int
    y: int
    z: int
    timestamp: float

    @property
    def magnitude(self) -> float:
        return math.sqrt(self.x * self.x + self.y * self.y + self.z * self.z)

    @property
    def magnitude_g(self) -> float:
        return self.magnitude / ACCEL_LSB_PER_G


@dataclass(frozen=True)
class TemperatureReading:
    celsius: float
    raw_value: int
    frame_counter: Optional[int] = None


@dataclass(frozen=True)
class BatteryData:
    """Battery voltage reading with derived charge percentage"""

    millivolts: int
    percentage: int
    timestamp: Optional[float] = None

    @property
    def status(self) -> BatteryStatus:
        if self.percentage < 10:
            return BatteryStatus.CRITICAL
        if self.percentage < 20:
            return BatteryStatus.LOW
        if self.percentage < 50:
            return BatteryStatus.MEDIUM
        if self.percentage < 80:
            return BatteryStatus.GOOD
        return BatteryStatus.EXCELLENT

    @property
    def needs_charging(self) -> bool:
        return self.percentage < 20


@dataclass(frozen=True)
class PPGPacket:
    frame_counter: int
    samples: List[PPGSample]


@dataclass(frozen=True)
class AccelerometerPacket:
    frame_counter: int
    samples: List[AccelerometerSample]


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MuscleActivityEvent:
    """
    A closed interval of sustained Activity or Rest.

    Created only by the event detector when an interval closes and never
    modified afterwards. Normalized values are None when the detector runs
    in absolute mode without a calibration baseline.
    """

    event_number: int
    event_type: EventType
    start_timestamp: float
    end_timestamp: float

    start_ir: int
    end_ir: int
    average_ir: float

    start_normalized: Optional[float]
    end_normalized: Optional[float]
    average_normalized: Optional[float]
    baseline: Optional[float]

    # Snapshot at event start
    accel_x: int = 0
    accel_y: int = 0
    accel_z: int = 0
    temperature: Optional[float] = None

    # Latest biometrics known at event end
    heart_rate: Optional[float] = None
    spo2: Optional[float] = None
    sleep_state: Optional[SleepState] = None

    is_valid: bool = False

    @property
    def duration_ms(self) -> int:
        return int(round((self.end_timestamp - self.start_timestamp) * 1000.0))

    @property
    def accelerometer_magnitude(self) -> float:
        return math.sqrt(self.accel_x ** 2 + self.accel_y ** 2 + self.accel_z ** 2)

    @property
    def formatted_duration(self) -> str:
        """Human readable duration, e.g. '850ms', '3.2s' or '2m 5s'"""
        ms = self.duration_ms
        if ms < 1000:
            return f"{ms}ms"
        if ms < 60000:
            return f"{ms / 1000.0:.1f}s"
        minutes, seconds = divmod(ms // 1000, 60)
        return f"{minutes}m {seconds}s"


@dataclass(frozen=True)
class StateTransition:
    """Signal emitted by the state-transition detector on a committed change"""

    previous: DeviceRecordingState
    new: DeviceRecordingState
    timestamp: float


@dataclass(frozen=True)
class StateTransitionEvent:
    """
    Snapshot of the device at a confirmed state transition.

    Assembled by the consumer of StateTransition signals from whatever
    biometric and motion readings it holds at that moment.
    """

    timestamp: float
    state: DeviceRecordingState
    previous_state: Optional[DeviceRecordingState]
    ir_value: int
    baseline: Optional[float] = None
    heart_rate: Optional[float] = None
    spo2: Optional[float] = None
    perfusion_index: Optional[float] = None
    temperature: Optional[float] = None
    accel_x: int = 0
    accel_y: int = 0
    accel_z: int = 0
    battery_percentage: Optional[int] = None

    @property
    def normalized_ir_percent(self) -> Optional[float]:
        if self.baseline is None or self.baseline <= 0:
            return None
        return (self.ir_value - self.baseline) / self.baseline * 100.0

    @property
    def accelerometer_magnitude_g(self) -> float:
        raw = math.sqrt(self.accel_x ** 2 + self.accel_y ** 2 + self.accel_z ** 2)
        return raw / ACCEL_LSB_PER_G


def time_in_states(
        events: List[StateTransitionEvent],
        end_timestamp: float
) -> Dict[DeviceRecordingState, float]:
    """
    Total seconds spent in each state.

    Args:
        events: Transition events in timestamp order
        end_timestamp: Time at which the last state ends

    Returns:
        Mapping of state to accumulated seconds (every state present)
    """
    totals = {state: 0.0 for state in DeviceRecordingState}
    for current, following in zip(events, events[1:] + [None]):
        until = following.timestamp if following else end_timestamp
        totals[current.state] += max(0.0, until - current.timestamp)
    return totals


def state_counts(events: List[StateTransitionEvent]) -> Dict[DeviceRecordingState, int]:
    counts = {state: 0 for state in DeviceRecordingState}
    for event in events:
        counts[event.state] += 1
    return counts
