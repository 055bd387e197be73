# ─────────────────────────────────────────────────────────────────
# event_log.py - Durable Append-Only Report Log
#
# This file owns all durable storage for the application. The
# rest of the project only knows the log contract:
#   append(record) → total count, read_all() → every record in
#   arrival order, clear() → empty log.
#
# Current storage strategy: the whole log is ONE JSON array that
# is rewritten on each append. To keep the file consistent:
#
#   1. Write the full array to a temp file in the same directory
#   2. flush + fsync the temp file
#   3. os.replace(temp, canonical)  ← atomic on POSIX and Windows
#
# A reader of the canonical file sees either the old array or the
# new array, never a half-written one. A crash between steps 2 and
# 3 leaves the old file untouched plus a stray temp file, which
# recover() deletes on the next startup.
#
# Writers hold a threading.Lock across load + append + persist, all
# inside ONE worker-thread call. Locking only the write would let
# two concurrent reports read the same old array and one of them
# would be lost. The worker call is shielded: a cancelled request
# stops waiting, but its write still finishes before the lock is
# released to the next writer.
# ─────────────────────────────────────────────────────────────────

import asyncio
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import List

from pydantic import TypeAdapter, ValidationError as SchemaError

from errors import PersistenceError
from models import ReportRecord

logger = logging.getLogger("event_log")

_records_adapter = TypeAdapter(List[ReportRecord])


class EventLog:
    """Ordered, durable sequence of ReportRecord backed by one JSON file."""

    def __init__(self, path):
        self.path = Path(path)
        self._lock = threading.Lock()

    @property
    def _temp_prefix(self) -> str:
        return f".{self.path.name}."

    # ── PUBLIC API ──────────────────────────────────────────────

    async def append(self, record: ReportRecord) -> int:
        """
        Durably append one record and return the new total count.

        Raises PersistenceError if the write fails. In that case the
        record is NOT durable and the previous log is intact.
        """

        return await asyncio.shield(asyncio.to_thread(self._append_locked, record))

    async def read_all(self) -> List[ReportRecord]:
        """Point-in-time snapshot. Missing or corrupt file → empty list."""

        return await asyncio.to_thread(self._load)

    async def clear(self):
        await asyncio.shield(asyncio.to_thread(self._clear_locked))
        logger.info(f"🧹 Event log cleared: {self.path}")

    def recover(self) -> int:
        """
        Delete temp files left behind by a crash mid-append.
        Called once at startup. Returns how many were removed.
        """

        directory = self.path.parent
        if not directory.is_dir():
            return 0

        removed = 0
        for stray in directory.glob(f"{self._temp_prefix}*.tmp"):
            try:
                stray.unlink()
                removed += 1
            except FileNotFoundError:
                continue

        if removed:
            logger.warning(f"♻️  Removed {removed} stray temp file(s) next to {self.path}")
        return removed

    # ── STORAGE STRATEGY (whole-document rewrite) ───────────────

    def _append_locked(self, record: ReportRecord) -> int:
        with self._lock:
            records = self._load()
            records.append(record)
            self._persist(records)
            return len(records)

    def _clear_locked(self):
        with self._lock:
            self._persist([])

    def _load(self) -> List[ReportRecord]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as exc:
            logger.warning(f"⚠️  Could not read {self.path}: {exc}. Treating log as empty.")
            return []

        try:
            return _records_adapter.validate_python(json.loads(raw))
        except (ValueError, SchemaError) as exc:
            logger.warning(f"⚠️  Unparsable log file {self.path}: {exc}. Treating log as empty.")
            return []

    def _persist(self, records: List[ReportRecord]):
        payload = json.dumps(
            [record.model_dump(mode="json") for record in records],
            indent=2
        )

        tmp_path = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=self.path.parent, prefix=self._temp_prefix, suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, self.path)
            self._sync_directory()

        except OSError as exc:
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except FileNotFoundError:
                    pass
            logger.error(f"❌ Failed to persist event log to {self.path}: {exc}")
            raise PersistenceError(f"Could not write event log: {exc}") from exc

    def _sync_directory(self):
        """fsync the log's directory so the rename itself survives power loss."""

        if not hasattr(os, "O_DIRECTORY"):
            # Windows: directories cannot be opened for fsync
            return

        dir_fd = os.open(self.path.parent, os.O_RDONLY | os.O_DIRECTORY)
        try:
            os.fsync(dir_fd)
        finally:
            os.close(dir_fd)
