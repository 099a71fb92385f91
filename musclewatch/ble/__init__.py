"""
BLE Packet Decoding for musclewatch
Fixed-layout little-endian notifications from the wearable

Every decode function returns a ParseResult instead of raising:
- Parsed(value): decoded packet
- InsufficientData(expected, actual): packet too short
- InvalidData(reason): structurally impossible content

Usage:
    result = parse_ppg_packet(data, notification_time)
    if result.is_success:
        for sample in result.value.samples:
            ...
"""

from .parser import (
    InsufficientData,
    InvalidData,
    Parsed,
    ParseResult,
    battery_percentage,
    extract_frame_counter,
    parse_accelerometer_packet,
    parse_accelerometer_samples,
    parse_battery_packet,
    parse_ppg_packet,
    parse_ppg_samples,
    parse_standard_battery_level,
    parse_string,
    parse_temperature_packet,
)

__all__ = [
    'ParseResult',
    'Parsed',
    'InsufficientData',
    'InvalidData',
    'parse_ppg_packet',
    'parse_ppg_samples',
    'parse_accelerometer_packet',
    'parse_accelerometer_samples',
    'parse_temperature_packet',
    'parse_battery_packet',
    'parse_standard_battery_level',
    'parse_string',
    'extract_frame_counter',
    'battery_percentage',
]

__version__ = '1.0.0'
