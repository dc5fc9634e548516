"""Opaque persistence of pairing credentials.

The transport decides what a credential update contains; this store only
merges updates into one JSON document and hands the result back on load.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from wagate.logger import logger
from wagate.utils import write_json_atomic


class FileCredentialStore:
    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> dict[str, Any] | None:
        """Return stored credentials, or None when nothing usable is on disk."""
        if not self._path.exists():
            return None
        try:
            data = json.loads(self._path.read_text())
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable credentials", path=str(self._path), err=str(exc))
            return None
        return data if isinstance(data, dict) else None

    def save(self, update: dict[str, Any]) -> None:
        current = self.load() or {}
        current.update(update)
        write_json_atomic(self._path, current, indent=2)
