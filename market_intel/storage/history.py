"""HistoryStore — newest-first log of ReportRecords in a JSON file.

Layout: a single JSON array of record objects, newest first; ``append``
prepends. Writes go to a temp file in the same directory followed by
``os.replace``, so a reader never observes a partially written list, and a
lock serialises concurrent appends within the process.

When the file (or its directory) cannot be written at ``open`` time the store
runs transient: records live in memory for the process lifetime only.
"""

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, List

from market_intel.core.errors import PersistError
from market_intel.core.logger import logger
from market_intel.models.datatypes import ReportRecord


class HistoryStore:
    """
    Args:
        path: JSON file backing the log.
    """

    def __init__(self, path: str | Path = "data/history.json") -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self._memory: List[Dict[str, Any]] = []
        self._transient = False
        self._opened = False

    # ── lifecycle ─────────────────────────────────────────────────────────────

    def open(self) -> "HistoryStore":
        """Prepare the backing file; fall back to transient mode if unwritable."""
        with self._lock:
            if self._opened:
                return self
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                if not self.path.exists():
                    self._write_atomic([])
                elif not os.access(self.path, os.W_OK):
                    raise PersistError(f"{self.path} is read-only")
                self._transient = False
                logger.info(f"HistoryStore: opened {self.path}")
            except (OSError, PersistError) as exc:
                self._transient = True
                logger.warning(f"HistoryStore: {exc}, keeping history in memory only")
            self._opened = True
        return self

    def close(self) -> None:
        with self._lock:
            if self._opened:
                logger.info(
                    f"HistoryStore: closed ({'transient' if self._transient else self.path})"
                )
            self._opened = False

    def __enter__(self) -> "HistoryStore":
        return self.open()

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @property
    def transient(self) -> bool:
        return self._transient

    # ── public ────────────────────────────────────────────────────────────────

    def append(self, record: ReportRecord) -> bool:
        """Prepend ``record``. Best-effort: never raises.

        Returns:
            bool: ``True`` if the record reached the backing file.
        """
        self._ensure_open()
        with self._lock:
            if self._transient:
                self._memory.insert(0, record.to_dict())
                logger.info(f"HistoryStore: record {record.id} kept in memory (transient store)")
                return False
            try:
                history = self._read_file()
                history.insert(0, record.to_dict())
                self._write_atomic(history)
            except (OSError, PersistError, TypeError, ValueError) as exc:
                logger.warning(f"HistoryStore: append of record {record.id} skipped: {exc}")
                return False
        logger.info(f"HistoryStore: record {record.id} saved ({len(history)} total)")
        return True

    def read_all(self) -> List[ReportRecord]:
        """Return a snapshot of all records, newest first; empty on any failure."""
        self._ensure_open()
        with self._lock:
            if self._transient:
                raw = list(self._memory)
            else:
                try:
                    raw = self._read_file()
                except (OSError, PersistError) as exc:
                    logger.warning(f"HistoryStore: read failed: {exc}")
                    return []

        records: List[ReportRecord] = []
        for entry in raw:
            try:
                records.append(ReportRecord.from_dict(entry))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning(f"HistoryStore: skipping malformed record: {exc}")
        return records

    # ── internal ──────────────────────────────────────────────────────────────

    def _ensure_open(self) -> None:
        if not self._opened:
            self.open()

    def _read_file(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            return []
        with open(self.path, "r", encoding="utf-8") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as exc:
                raise PersistError(f"{self.path} is not valid JSON: {exc}") from exc
        if not isinstance(data, list):
            raise PersistError(f"{self.path} does not hold a JSON array")
        return data

    def _write_atomic(self, history: List[Dict[str, Any]]) -> None:
        fd, tmp_path = tempfile.mkstemp(suffix=".tmp", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(history, f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
