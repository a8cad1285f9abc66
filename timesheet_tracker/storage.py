"""
Storage backends for the entry and course-rate collections.

The API only relies on the small ``Store`` protocol, so a file backend, the
in-memory backend used by tests, or any other keyed store can be plugged in
through ``create_app``.

The JSON file backends treat the file as the whole database: every call
reads the full document, changes it in memory and writes it back. There is
no locking; overlapping writers lose updates (last write wins).
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Tuple

from .errors import StorageError

logger = logging.getLogger(__name__)


class Store(Protocol):
    def get(self, key: str) -> Optional[Any]: ...
    def list(self) -> List[Any]: ...
    def items(self) -> List[Tuple[str, Any]]: ...
    def put(self, key: str, value: Any) -> None: ...
    def delete(self, key: str) -> bool: ...


class MemoryStore:
    """Dict-backed store; keeps insertion order."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._data: Dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Optional[Any]:
        return self._data.get(key)

    def list(self) -> List[Any]:
        return list(self._data.values())

    def items(self) -> List[Tuple[str, Any]]:
        return list(self._data.items())

    def put(self, key: str, value: Any) -> None:
        self._data[key] = value

    def delete(self, key: str) -> bool:
        if key not in self._data:
            return False
        del self._data[key]
        return True


class _JsonDocument:
    """One JSON file holding a whole collection."""

    default_factory: Any = dict

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def ensure(self) -> None:
        """Create the file (and its folder) with an empty collection if missing."""
        if self.path.exists():
            return
        self._write(self.default_factory())
        logger.info("Created empty data file %s", self.path)

    def _read(self) -> Any:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Failed to read %s: %s", self.path, exc)
            return self.default_factory()
        if not isinstance(data, self.default_factory):
            logger.warning(
                "Ignoring %s: expected a JSON %s, found %s",
                self.path,
                self.default_factory.__name__,
                type(data).__name__,
            )
            return self.default_factory()
        return data

    def _write(self, data: Any) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        except (OSError, TypeError, ValueError) as exc:
            raise StorageError(f"Failed to write {self.path}: {exc}") from exc
        logger.debug("Wrote %s", self.path)


class JsonEntryStore(_JsonDocument):
    """Entries kept as a JSON array of objects, keyed by their ``id``."""

    default_factory = list

    def _records(self) -> List[Dict[str, Any]]:
        return [record for record in self._read() if isinstance(record, dict)]

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        for record in self._records():
            if record.get("id") == key:
                return record
        return None

    def list(self) -> List[Dict[str, Any]]:
        return self._records()

    def items(self) -> List[Tuple[str, Dict[str, Any]]]:
        return [(record.get("id"), record) for record in self._records()]

    def put(self, key: str, value: Dict[str, Any]) -> None:
        records = self._read()
        for index, record in enumerate(records):
            if isinstance(record, dict) and record.get("id") == key:
                records[index] = value
                break
        else:
            records.append(value)
        self._write(records)

    def delete(self, key: str) -> bool:
        records = self._read()
        remaining = [
            record for record in records if not (isinstance(record, dict) and record.get("id") == key)
        ]
        if len(remaining) == len(records):
            return False
        self._write(remaining)
        return True


class JsonRateStore(_JsonDocument):
    """Course rates kept as a JSON object of course name to hourly rate."""

    default_factory = dict

    def get(self, key: str) -> Optional[Any]:
        return self._read().get(key)

    def list(self) -> List[Any]:
        return list(self._read().values())

    def items(self) -> List[Tuple[str, Any]]:
        return list(self._read().items())

    def put(self, key: str, value: Any) -> None:
        rates = self._read()
        rates[key] = value
        self._write(rates)

    def delete(self, key: str) -> bool:
        rates = self._read()
        if key not in rates:
            return False
        del rates[key]
        self._write(rates)
        return True
