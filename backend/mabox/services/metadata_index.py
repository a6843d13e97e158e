"""In-memory metadata index: public name -> FileRecord.

One lock guards the whole mapping. Records are immutable, so readers get a
consistent value without per-record locking.

Besides committed records the index holds *reservations*: names handed out
by the name resolver to an in-flight upload whose rename has not finished
yet. A reserved name is taken for collision purposes but is invisible to
lookups, so a record is never visible before its blob exists.
"""
import threading
from datetime import datetime
from typing import Callable, Iterable, Optional

from mabox.models.file_record import FileRecord


class MetadataIndex:
    def __init__(self):
        self._lock = threading.Lock()
        self._records: dict[str, FileRecord] = {}
        self._reserved: set[str] = set()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, public_name: str) -> bool:
        with self._lock:
            return public_name in self._records

    def get(self, public_name: str) -> Optional[FileRecord]:
        with self._lock:
            return self._records.get(public_name)

    def is_taken(self, public_name: str) -> bool:
        """True if the name is committed or reserved."""
        with self._lock:
            return public_name in self._records or public_name in self._reserved

    def claim(
        self,
        candidates: Iterable[str],
        is_free_on_disk: Callable[[str], bool],
    ) -> Optional[str]:
        """Reserve the first candidate that is free in both the index and on disk.

        The check and the reservation happen under the lock, so two concurrent
        uploads cannot be handed the same name. Returns None if every
        candidate was taken.

        is_free_on_disk may block on the filesystem once per candidate, so
        callers on an event loop should run this in a worker thread. Its
        exceptions propagate with nothing reserved.
        """
        with self._lock:
            for name in candidates:
                if name in self._records or name in self._reserved:
                    continue
                if not is_free_on_disk(name):
                    continue
                self._reserved.add(name)
                return name
        return None

    def commit(self, record: FileRecord) -> None:
        """Turn a reservation into a visible record."""
        with self._lock:
            if record.public_name in self._records:
                raise KeyError(f"Record already exists: {record.public_name}")
            self._reserved.discard(record.public_name)
            self._records[record.public_name] = record

    def release(self, public_name: str) -> None:
        """Drop a reservation whose upload failed. No-op if not reserved."""
        with self._lock:
            self._reserved.discard(public_name)

    def pop(self, public_name: str, expected: Optional[FileRecord] = None) -> Optional[FileRecord]:
        """Remove and return a record.

        With `expected`, the record is removed only if it is still that exact
        record, so a stale eviction cannot drop a newer upload that reused
        the name.
        """
        with self._lock:
            current = self._records.get(public_name)
            if current is None:
                return None
            if expected is not None and current is not expected:
                return None
            del self._records[public_name]
            return current

    def expired(self, now: datetime) -> list[FileRecord]:
        """Snapshot of every record with expires_at <= now."""
        with self._lock:
            return [r for r in self._records.values() if r.is_expired(now)]

    def snapshot(self) -> list[FileRecord]:
        with self._lock:
            return list(self._records.values())
