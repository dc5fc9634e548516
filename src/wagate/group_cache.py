"""Time-bounded cache of group metadata.

Avoids a protocol round-trip for every send to a group. Entries expire a
fixed TTL after they were written; reads never extend that.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import Any

from wagate.config import GROUP_CACHE_TTL


class GroupMetadataCache:
    def __init__(
        self,
        ttl: float = GROUP_CACHE_TTL,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl
        self._clock = clock
        self._entries: dict[str, tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def get(self, group_id: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(group_id)
            if entry is None:
                return None
            metadata, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[group_id]
                return None
            return metadata

    def set(self, group_id: str, metadata: Any) -> None:
        with self._lock:
            self._entries[group_id] = (metadata, self._clock() + self._ttl)

    def __len__(self) -> int:
        """Entry count, including expired entries not yet purged."""
        return len(self._entries)
