"""
Metric History
Bounded, time-ordered buffer of biometric readings owned by one detector
"""

import bisect
from collections import deque
from typing import Callable, Generic, Iterator, Optional, Tuple, TypeVar

T = TypeVar('T')


class MetricHistory(Generic[T]):
    """
    Time-ordered (timestamp, value) entries pruned on every insert

    Entries older than retention_seconds before the newest entry are
    dropped. Late entries are inserted in timestamp order.
    """

    def __init__(self, retention_seconds: float):
        self.retention_seconds = retention_seconds
        self._entries = deque()

    def add(self, value: T, timestamp: float):
        if not self._entries or timestamp >= self._entries[-1][0]:
            self._entries.append((timestamp, value))
        else:
            times = [t for t, _ in self._entries]
            self._entries.insert(bisect.bisect_right(times, timestamp), (timestamp, value))
        self.prune()

    def prune(self):
        if not self._entries:
            return
        cutoff = self._entries[-1][0] - self.retention_seconds
        while self._entries and self._entries[0][0] < cutoff:
            self._entries.popleft()

    def latest_at(self, timestamp: float) -> Optional[T]:
        """Most recent value recorded at or before timestamp"""
        for entry_time, value in reversed(self._entries):
            if entry_time <= timestamp:
                return value
        return None

    def any_within(self, end: float, window_seconds: float, predicate: Callable[[T], bool]) -> bool:
        """True if an entry in [end - window, end] satisfies predicate"""
        start = end - window_seconds
        for entry_time, value in reversed(self._entries):
            if entry_time > end:
                continue
            if entry_time < start:
                break
            if predicate(value):
                return True
        return False

    @property
    def latest(self) -> Optional[T]:
        return self._entries[-1][1] if self._entries else None

    def clear(self):
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Tuple[float, T]]:
        return iter(self._entries)
