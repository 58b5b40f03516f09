# This module keeps the per-source cursors that bound every incremental query.
# Watermarks live in memory for the lifetime of the process; a restart starts every source from a fresh baseline.
# A single state lock guards both maps, and `hold()` serializes read-then-advance per source key.

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class TimeWindow:
    """Half-open window `[from_ts, to_ts)`."""

    from_ts: datetime
    to_ts: datetime
    is_first_run: bool

    @property
    def is_empty(self) -> bool:
        return self.from_ts >= self.to_ts


@dataclass(frozen=True)
class IdBound:
    """Rows with identifier strictly greater than `last_id` are new."""

    last_id: int
    is_first_run: bool


class WatermarkStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._time_marks: dict[str, datetime] = {}
        self._id_marks: dict[str, int] = {}
        self._key_locks: dict[str, threading.Lock] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """Serialize a full read-query-advance cycle for one source key."""

        with self._lock:
            key_lock = self._key_locks.setdefault(key, threading.Lock())
        with key_lock:
            yield

    def current_window(self, key: str, now: datetime) -> TimeWindow:
        with self._lock:
            previous = self._time_marks.get(key)
        if previous is None:
            return TimeWindow(from_ts=now, to_ts=now, is_first_run=True)
        return TimeWindow(from_ts=previous, to_ts=now, is_first_run=False)

    def advance(self, key: str, to_ts: datetime) -> None:
        with self._lock:
            previous = self._time_marks.get(key)
            if previous is None or to_ts > previous:
                self._time_marks[key] = to_ts

    def current_id_bound(self, key: str) -> IdBound:
        with self._lock:
            last_id = self._id_marks.get(key)
        if last_id is None:
            return IdBound(last_id=0, is_first_run=True)
        return IdBound(last_id=last_id, is_first_run=False)

    def advance_id(self, key: str, new_max: int) -> None:
        with self._lock:
            previous = self._id_marks.get(key)
            if previous is None or new_max > previous:
                self._id_marks[key] = new_max

    def snapshot(self) -> dict[str, datetime | int]:
        """Copy of every recorded watermark, for logging and diagnostics."""

        with self._lock:
            merged: dict[str, datetime | int] = dict(self._time_marks)
            merged.update(self._id_marks)
        return merged
