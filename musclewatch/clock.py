"""
Sample Clock
Monotonic notification timestamps for decoded BLE packets
"""

import threading
import logging
import time
from typing import Optional

logger = logging.getLogger(__name__)


class SampleClock:
    """
    Thread-safe notification clock

    Packet timestamps are back-computed from the notification time, so
    notification times must never repeat or go backwards:
    - Thread-safe access (BLE callbacks may arrive on another thread)
    - Monotonic timestamps (always increasing, no duplicates)
    - Seconds since the epoch as float
    """

    MIN_STEP = 1e-6  # seconds

    def __init__(self):
        """Initialize sample clock"""
        self._lock = threading.Lock()
        self._last_timestamp: Optional[float] = None
        self._call_count = 0

    def now(self) -> float:
        """
        Get the current notification timestamp

        Returns:
            float: Seconds since the epoch, strictly increasing per call
        """
        with self._lock:
            current_time = time.time()

            if self._last_timestamp is not None and current_time <= self._last_timestamp:
                current_time = self._last_timestamp + self.MIN_STEP
                logger.debug("Adjusted timestamp to maintain monotonic sequence")

            self._last_timestamp = current_time
            self._call_count += 1

            return current_time

    def reset(self):
        with self._lock:
            self._last_timestamp = None
            self._call_count = 0

    def get_stats(self) -> dict:
        with self._lock:
            return {
                'total_calls': self._call_count,
                'last_timestamp': self._last_timestamp,
            }

    def __repr__(self):
        return f"<SampleClock(calls={self._call_count})>"
