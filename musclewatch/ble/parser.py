"""
BLE Packet Decoder
Parses fixed-layout little-endian sensor notifications into typed samples

Packet formats:
  PPG:           frame_counter(u32) | N x (red u32, ir u32, green u32)
  Accelerometer: frame_counter(u32) | N x (x i16, y i16, z i16)
  Temperature:   frame_counter(u32) | centidegrees(i16)
  Battery:       millivolts(i32)                      (no frame counter)

Samples inside a packet are ordered oldest-first; timestamps are
back-computed from the notification time at a fixed sample interval.
"""

import logging
import re
import struct
import time
from dataclasses import dataclass
from typing import Any, List, Optional

from ..models import (
    AccelerometerPacket,
    AccelerometerSample,
    BatteryData,
    PPGPacket,
    PPGSample,
    TemperatureReading,
)

logger = logging.getLogger(__name__)


HEADER_LEN = 4
PPG_SAMPLE_LEN = 12
ACCEL_SAMPLE_LEN = 6
TEMPERATURE_LEN = 2
BATTERY_LEN = 4

PPG_SAMPLE_INTERVAL = 0.020    # 50 Hz
ACCEL_SAMPLE_INTERVAL = 0.010  # 100 Hz

BATTERY_MIN_MV = 2500
BATTERY_MAX_MV = 4500
BATTERY_EMPTY_MV = 3000
BATTERY_SPAN_MV = 1200

_FRAME_COUNTER = struct.Struct('<I')
_PPG_SAMPLE = struct.Struct('<III')
_ACCEL_SAMPLE = struct.Struct('<hhh')
_TEMPERATURE = struct.Struct('<h')
_BATTERY = struct.Struct('<i')

_CONTROL_EDGES = re.compile(r'^[\x00-\x1f\x7f-\x9f]+|[\x00-\x1f\x7f-\x9f]+$')


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

class ParseResult:
    """Base class for decode outcomes"""

    @property
    def is_success(self) -> bool:
        return False

    @property
    def value(self) -> Any:
        return None

    @property
    def error_message(self) -> Optional[str]:
        return None


@dataclass(frozen=True)
class Parsed(ParseResult):
    payload: Any

    @property
    def is_success(self) -> bool:
        return True

    @property
    def value(self) -> Any:
        return self.payload


@dataclass(frozen=True)
class InsufficientData(ParseResult):
    expected: int
    actual: int

    @property
    def error_message(self) -> str:
        return f"Insufficient data: expected at least {self.expected} bytes, got {self.actual}"


@dataclass(frozen=True)
class InvalidData(ParseResult):
    reason: str

    @property
    def error_message(self) -> str:
        return f"Invalid data: {self.reason}"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def extract_frame_counter(data: bytes) -> Optional[int]:
    """Return the little-endian frame counter, or None if the header is short."""
    if len(data) < HEADER_LEN:
        return None
    return _FRAME_COUNTER.unpack_from(data, 0)[0]


def sample_timestamps(count: int, notification_time: float, interval: float) -> List[float]:
    """
    Back-compute timestamps for an oldest-first batch.

    The newest sample gets the notification time; each earlier sample is
    one interval older than the next.
    """
    return [notification_time - (count - 1 - i) * interval for i in range(count)]


def battery_percentage(millivolts: int) -> int:
    """Linear charge estimate between 3000 mV (empty) and 4200 mV (full)."""
    percentage = (millivolts - BATTERY_EMPTY_MV) * 100 // BATTERY_SPAN_MV
    return max(0, min(100, percentage))


def _now(notification_time: Optional[float]) -> float:
    return time.time() if notification_time is None else notification_time


# ---------------------------------------------------------------------------
# Sample payloads (no header)
# ---------------------------------------------------------------------------

def parse_ppg_samples(payload: bytes, notification_time: Optional[float] = None) -> List[PPGSample]:
    """
    Decode back-to-back 12-byte PPG samples; a trailing partial sample is ignored.

    Args:
        payload: Sample bytes without the frame counter
        notification_time: Arrival time of the newest sample (seconds)

    Returns:
        Samples ordered oldest-first
    """
    count = len(payload) // PPG_SAMPLE_LEN
    times = sample_timestamps(count, _now(notification_time), PPG_SAMPLE_INTERVAL)
    values = _PPG_SAMPLE.iter_unpack(payload[:count * PPG_SAMPLE_LEN])
    return [
        PPGSample(red=red, ir=ir, green=green, timestamp=ts)
        for (red, ir, green), ts in zip(values, times)
    ]


def parse_accelerometer_samples(
        payload: bytes,
        notification_time: Optional[float] = None
) -> List[AccelerometerSample]:
    count = len(payload) // ACCEL_SAMPLE_LEN
    times = sample_timestamps(count, _now(notification_time), ACCEL_SAMPLE_INTERVAL)
    values = _ACCEL_SAMPLE.iter_unpack(payload[:count * ACCEL_SAMPLE_LEN])
    return [
        AccelerometerSample(x=x, y=y, z=z, timestamp=ts)
        for (x, y, z), ts in zip(values, times)
    ]


# ---------------------------------------------------------------------------
# Packets
# ---------------------------------------------------------------------------

def parse_ppg_packet(data: bytes, notification_time: Optional[float] = None) -> ParseResult:
    """
    Decode a PPG notification.

    Args:
        data: Raw notification bytes
        notification_time: Arrival time in seconds (defaults to now)

    Returns:
        Parsed(PPGPacket), InsufficientData or InvalidData
    """
    minimum = HEADER_LEN + PPG_SAMPLE_LEN
    if len(data) < minimum:
        return InsufficientData(expected=minimum, actual=len(data))

    frame_counter = extract_frame_counter(data)
    samples = parse_ppg_samples(data[HEADER_LEN:], notification_time)
    if not samples:
        return InvalidData(reason="no PPG samples in packet")

    return Parsed(PPGPacket(frame_counter=frame_counter, samples=samples))


def parse_accelerometer_packet(data: bytes, notification_time: Optional[float] = None) -> ParseResult:
    """
    Decode an accelerometer notification.

    Returns:
        Parsed(AccelerometerPacket), InsufficientData or InvalidData
    """
    minimum = HEADER_LEN + ACCEL_SAMPLE_LEN
    if len(data) < minimum:
        return InsufficientData(expected=minimum, actual=len(data))

    frame_counter = extract_frame_counter(data)
    samples = parse_accelerometer_samples(data[HEADER_LEN:], notification_time)
    if not samples:
        return InvalidData(reason="no accelerometer samples in packet")

    return Parsed(AccelerometerPacket(frame_counter=frame_counter, samples=samples))


def parse_temperature_packet(data: bytes) -> ParseResult:
    minimum = HEADER_LEN + TEMPERATURE_LEN
    if len(data) < minimum:
        return InsufficientData(expected=minimum, actual=len(data))

    raw = _TEMPERATURE.unpack_from(data, HEADER_LEN)[0]
    return Parsed(TemperatureReading(
        celsius=raw / 100.0,
        raw_value=raw,
        frame_counter=extract_frame_counter(data),
    ))


def parse_battery_packet(data: bytes, notification_time: Optional[float] = None) -> ParseResult:
    """
    Decode a battery voltage notification (no frame counter).

    Readings outside 2500-4500 mV are rejected as InvalidData.
    """
    if len(data) < BATTERY_LEN:
        return InsufficientData(expected=BATTERY_LEN, actual=len(data))

    millivolts = _BATTERY.unpack_from(data, 0)[0]
    if not BATTERY_MIN_MV <= millivolts <= BATTERY_MAX_MV:
        return InvalidData(
            reason=f"battery voltage {millivolts} mV outside {BATTERY_MIN_MV}-{BATTERY_MAX_MV} mV"
        )

    return Parsed(BatteryData(
        millivolts=millivolts,
        percentage=battery_percentage(millivolts),
        timestamp=notification_time,
    ))


def parse_standard_battery_level(data: bytes) -> ParseResult:
    """Decode the one-byte standard Battery Level characteristic (0-100 %)."""
    if len(data) < 1:
        return InsufficientData(expected=1, actual=0)

    level = data[0]
    if level > 100:
        return InvalidData(reason=f"battery level {level}% above 100%")
    return Parsed(level)


def parse_string(data: bytes) -> Optional[str]:
    """UTF-8 decode with leading/trailing control characters removed."""
    try:
        text = bytes(data).decode('utf-8')
    except UnicodeDecodeError:
        logger.debug(f"Could not decode {len(data)} bytes as UTF-8")
        return None
    return _CONTROL_EDGES.sub('', text)
