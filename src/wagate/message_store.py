"""Bounded in-memory history of inbound messages.

A FIFO ring of records plus an id → record index. Both are mutated under one
lock so readers never see a record without its index entry, or an index
entry whose record was already evicted. History is volatile: nothing survives
a restart.
"""

from __future__ import annotations

import math
import threading
from collections import deque

from wagate.config import DEFAULT_MESSAGE_LIMIT, MAX_MESSAGE_LIMIT
from wagate.types import InboundMessageRecord

DEFAULT_CAPACITY = 200


def clamp_limit(raw: object, *, maximum: int, default: int = DEFAULT_MESSAGE_LIMIT) -> int:
    """Coerce a caller-supplied limit into ``[1, maximum]``.

    Zero, NaN, non-numeric and missing values fall back to *default*.
    Out-of-range numbers, infinities included, are clamped.
    """
    try:
        value = float(raw)  # type: ignore[arg-type]
    except OverflowError:
        # an int too large for a float
        value = math.inf if raw > 0 else -math.inf  # type: ignore[operator]
    except (TypeError, ValueError):
        value = 0.0
    if math.isnan(value) or value == 0:
        value = default
    return int(max(1, min(value, maximum)))


class MessageStore:
    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be a positive integer")
        self._capacity = capacity
        self._records: deque[InboundMessageRecord] = deque()
        self._index: dict[str, InboundMessageRecord] = {}
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._records)

    def append(self, record: InboundMessageRecord) -> InboundMessageRecord | None:
        """Add *record*, evicting the oldest one first when full.

        Returns the evicted record, if any.
        """
        evicted: InboundMessageRecord | None = None
        with self._lock:
            if record.id is not None and record.id in self._index:
                # Redelivered id: keep only the newest copy.
                self._remove_identical(self._index.pop(record.id))
            if len(self._records) >= self._capacity:
                evicted = self._records.popleft()
                if evicted.id is not None and self._index.get(evicted.id) is evicted:
                    del self._index[evicted.id]
            self._records.append(record)
            if record.id is not None:
                self._index[record.id] = record
        return evicted

    def get_recent(self, limit: object = DEFAULT_MESSAGE_LIMIT) -> list[InboundMessageRecord]:
        """Most recent records in arrival order (oldest first, newest last)."""
        count = clamp_limit(limit, maximum=min(self._capacity, MAX_MESSAGE_LIMIT))
        with self._lock:
            return list(self._records)[-count:]

    def lookup_by_id(self, message_id: str) -> InboundMessageRecord | None:
        with self._lock:
            return self._index.get(message_id)

    def _remove_identical(self, record: InboundMessageRecord) -> None:
        for i, candidate in enumerate(self._records):
            if candidate is record:
                del self._records[i]
                return
