"""
Persistence for the last known stable time.

Stores the three-field {uptime, timestamp, offset} record so a restarted
process can answer now() before its first sync completes.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from ntpclock.exceptions import StorageError

logger = logging.getLogger(__name__)

STABLE_TIME_KEY = "stable_time"


class TimeStorage(ABC):
    """Key/value store for a serialized TimeFreeze."""

    @abstractmethod
    def load(self) -> dict[str, Any] | None:
        """Return the stored record, or None if there is none."""
        pass

    @abstractmethod
    def save(self, data: dict[str, Any]) -> None:
        """Replace the stored record."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Remove the stored record."""
        pass


class MemoryTimeStorage(TimeStorage):
    """Process-local storage, mostly useful for tests and short-lived tools."""

    def __init__(self, data: dict[str, Any] | None = None):
        self._data = dict(data) if data is not None else None

    def load(self) -> dict[str, Any] | None:
        return dict(self._data) if self._data is not None else None

    def save(self, data: dict[str, Any]) -> None:
        self._data = dict(data)

    def clear(self) -> None:
        self._data = None


class FileTimeStorage(TimeStorage):
    """
    JSON file storage.

    The file holds a single object with the record under "stable_time".
    Missing, unreadable or malformed files read as empty.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()

    def load(self) -> dict[str, Any] | None:
        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable stable time file %s: %s", self.path, e)
            return None

        record = document.get(STABLE_TIME_KEY) if isinstance(document, dict) else None
        if not isinstance(record, dict):
            logger.warning("Ignoring malformed stable time file %s", self.path)
            return None
        return record

    def save(self, data: dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".stable_time.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump({STABLE_TIME_KEY: data}, f)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StorageError(f"Could not write {self.path}: {e}") from e

    def clear(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Could not remove {self.path}: {e}") from e
