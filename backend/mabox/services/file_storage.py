"""Ephemeral file store: uploaded bytes on local disk, metadata in memory, TTL eviction.

Consistency rules shared by put, get/stat and the sweeper:

- a record is committed only after its blob has been renamed into place,
  so a visible record never points at a file that was never written;
- evictions pop the record first and unlink second, so the name stays
  taken on disk until the blob is gone and cannot be handed to a new
  upload while the old bytes still sit under it;
- "file already gone" on unlink/open is a normal outcome of the lazy
  deletion and sweep paths overlapping, never an error.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, Optional
from urllib.parse import quote

import aiofiles
import aiofiles.os

from mabox.models.file_record import FileRecord
from mabox.services.errors import FileExpired, FileNotFound, StorageIOError
from mabox.services.metadata_index import MetadataIndex
from mabox.services.name_resolver import DEFAULT_MAX_ATTEMPTS, NameResolver
from mabox.services.ttl import Clock, SystemClock, resolve_expiration

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"
DEFAULT_CHUNK_SIZE = 64 * 1024
# Marks a directory the store created or found empty; orphan reconciliation needs it
STORE_MARKER = ".mabox-store"


@dataclass(frozen=True)
class StoredFile:
    record: FileRecord
    download_url: str


@dataclass
class SweepReport:
    expired: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    orphans: list[str] = field(default_factory=list)

    @property
    def removed(self) -> int:
        return len(self.expired) + len(self.orphans)


class FileDownload:
    """An open blob plus the record describing it.

    The handle is opened by the store, so the bytes stay readable even if the
    sweeper unlinks the file mid-stream. iter_chunks() always closes the
    handle, including when the consumer stops early (client disconnect).
    """

    def __init__(self, record: FileRecord, handle):
        self.record = record
        self._handle = handle
        self._closed = False

    async def iter_chunks(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> AsyncIterator[bytes]:
        try:
            while True:
                chunk = await self._handle.read(chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            await self.aclose()

    async def read_all(self) -> bytes:
        """Whole blob in memory. For tests and small files only."""
        try:
            return await self._handle.read()
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if not self._closed:
            self._closed = True
            await self._handle.close()

    @property
    def closed(self) -> bool:
        return self._closed


class EphemeralStore:
    """Owns the blob directory and the metadata index exclusively (single process)."""

    def __init__(
        self,
        blob_dir,
        *,
        clock: Optional[Clock] = None,
        public_base_url: str = "",
        max_name_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        self.blob_dir = Path(blob_dir)
        self.blob_dir.mkdir(parents=True, exist_ok=True)
        self.marker_path = self.blob_dir / STORE_MARKER
        self._claim_directory()
        self.clock = clock or SystemClock()
        self.public_base_url = public_base_url.rstrip("/")
        self.index = MetadataIndex()
        self.resolver = NameResolver(self.blob_dir, self.index, max_attempts=max_name_attempts)

    def _claim_directory(self) -> None:
        if self.marker_path.exists():
            return
        if any(p.is_file() for p in self.blob_dir.iterdir()):
            logger.warning(
                f"{self.blob_dir} already holds files and has no {STORE_MARKER}; orphan reconciliation disabled"
            )
            return
        self.marker_path.touch()

    @property
    def owns_directory(self) -> bool:
        return self.marker_path.is_file()

    def __len__(self) -> int:
        return len(self.index)

    def blob_path(self, public_name: str) -> Path:
        return self.blob_dir / public_name

    def download_url(self, public_name: str) -> str:
        return f"{self.public_base_url}/files/{quote(public_name)}"

    # ── Put ─────────────────────────────────────────────────────────

    async def put(
        self,
        staged_path,
        original_name: str,
        size_bytes: int,
        mime_type: Optional[str] = None,
        ttl: Optional[str] = None,
        desired_name: Optional[str] = None,
    ) -> StoredFile:
        """Move a fully written staged file into the store.

        On failure no record is inserted and the staged file is left where it
        is; cleaning it up is the caller's job.
        """
        uploaded_at = self.clock.now()
        expires_at = resolve_expiration(ttl, uploaded_at)
        public_name = await self._reserve_name(desired_name, original_name)

        final_path = self.blob_path(public_name)
        try:
            record = FileRecord(
                public_name=public_name,
                original_name=original_name or public_name,
                size_bytes=size_bytes,
                mime_type=mime_type or DEFAULT_MIME_TYPE,
                uploaded_at=uploaded_at,
                expires_at=expires_at,
            )
            await self._rename(Path(staged_path), final_path)
        except BaseException:
            self.index.release(public_name)
            raise

        self.index.commit(record)
        logger.info(
            f"Stored {public_name} ({size_bytes} bytes, expires {expires_at.isoformat()})"
        )
        return StoredFile(record=record, download_url=self.download_url(public_name))

    async def _reserve_name(self, desired_name: Optional[str], original_name: Optional[str]) -> str:
        """Run the name search in a worker thread; it stats the blob directory per candidate."""
        future = asyncio.ensure_future(
            asyncio.to_thread(self.resolver.resolve, desired_name, original_name)
        )
        try:
            return await asyncio.shield(future)
        except asyncio.CancelledError:
            # The thread may still reserve a name nobody will commit
            future.add_done_callback(self._release_abandoned)
            raise

    def _release_abandoned(self, future: asyncio.Future) -> None:
        if not future.cancelled() and future.exception() is None:
            self.index.release(future.result())

    # ── Get / Stat ──────────────────────────────────────────────────

    async def _lookup(self, public_name: str) -> FileRecord:
        """Index lookup plus lazy expiry. Raises FileNotFound / FileExpired."""
        record = self.index.get(public_name)
        if record is None:
            raise FileNotFound(public_name)

        if record.is_expired(self.clock.now()):
            logger.info(f"Lazily evicting expired file {public_name}")
            await self._evict(record)
            raise FileExpired(public_name)

        return record

    async def stat(self, public_name: str) -> FileRecord:
        """Metadata for a live file, with the same error semantics as get()."""
        record = await self._lookup(public_name)
        if not await aiofiles.os.path.isfile(self.blob_path(public_name)):
            self._drop_dangling(record)
            raise FileNotFound(public_name)
        return record

    async def get(self, public_name: str) -> FileDownload:
        """Open a live file for streaming. The caller must consume or close it."""
        record = await self._lookup(public_name)
        path = self.blob_path(public_name)
        try:
            handle = await aiofiles.open(path, "rb")
        except FileNotFoundError:
            self._drop_dangling(record)
            raise FileNotFound(public_name)
        except OSError as e:
            logger.error(f"Failed to open {path}: {e}")
            raise StorageIOError("open", path, e) from e

        # The record may have been evicted, and the name reused, while the open was pending
        if self.index.get(public_name) is not record:
            await handle.close()
            if record.is_expired(self.clock.now()):
                raise FileExpired(public_name)
            raise FileNotFound(public_name)
        return FileDownload(record, handle)

    def _drop_dangling(self, record: FileRecord) -> None:
        if self.index.pop(record.public_name, expected=record) is not None:
            logger.warning(f"Dropped record {record.public_name}: blob missing from disk")

    # ── Deletion ────────────────────────────────────────────────────

    async def delete(self, public_name: str) -> bool:
        """Remove a record and its blob. Idempotent: returns False if there was no record.

        Raises StorageIOError if the blob exists but cannot be unlinked (the
        record is gone either way).
        """
        record = self.index.pop(public_name)
        if record is None:
            return False
        await self._unlink(self.blob_path(public_name))
        return True

    async def _evict(self, record: FileRecord) -> bool:
        """Best-effort eviction used by lazy deletion and the sweeper.

        Returns False only when the unlink failed for a reason other than
        absence; the failure is logged and the record is removed anyway.
        """
        if self.index.pop(record.public_name, expected=record) is None:
            return True
        try:
            await self._unlink(self.blob_path(record.public_name))
        except StorageIOError:
            return False
        return True

    # ── Sweep ───────────────────────────────────────────────────────

    async def sweep(self) -> SweepReport:
        """Evict every record that was expired when the tick started.

        The expired set is a snapshot taken under the index lock; unlinks run
        outside it. Records inserted after the snapshot wait for the next tick.
        """
        report = SweepReport()
        for record in self.index.expired(self.clock.now()):
            if self.index.get(record.public_name) is not record:
                continue  # lazily evicted since the snapshot
            if await self._evict(record):
                report.expired.append(record.public_name)
            else:
                report.failed.append(record.public_name)
        if report.expired or report.failed:
            logger.info(
                f"Sweep removed {len(report.expired)} expired file(s), {len(report.failed)} unlink failure(s)"
            )
        return report

    async def reconcile_orphans(self, grace_seconds: float = 0) -> list[str]:
        """Delete blobs that have no record and no pending reservation.

        Only files whose mtime is at least `grace_seconds` old are touched, so
        a blob renamed into place an instant before its record is committed
        survives. Does nothing unless the blob directory carries the store
        marker, so a misconfigured directory is never emptied.
        """
        if not self.owns_directory:
            logger.warning(f"Skipping orphan reconciliation: {self.blob_dir} has no {STORE_MARKER}")
            return []
        cutoff = self.clock.now().timestamp() - grace_seconds
        paths = await asyncio.to_thread(self._list_blob_files)
        removed = []
        for path in paths:
            if self.index.is_taken(path.name):
                continue
            try:
                st = await aiofiles.os.stat(path)
            except FileNotFoundError:
                continue
            if st.st_mtime > cutoff:
                continue
            # Re-check: an upload may have claimed the name while we were stat-ing
            if self.index.is_taken(path.name):
                continue
            try:
                await self._unlink(path)
            except StorageIOError:
                continue
            logger.warning(f"Removed orphaned blob {path.name} (no metadata record)")
            removed.append(path.name)
        return removed

    def _list_blob_files(self) -> list[Path]:
        return [p for p in self.blob_dir.iterdir() if p.is_file() and p.name != STORE_MARKER]

    # ── Filesystem primitives ───────────────────────────────────────

    async def _rename(self, src: Path, dst: Path) -> None:
        try:
            await aiofiles.os.rename(src, dst)
        except OSError as e:
            logger.error(f"Rename {src} -> {dst} failed: {e}")
            raise StorageIOError("rename", dst, e) from e

    async def _unlink(self, path: Path) -> None:
        """Remove a file. Already absent counts as success."""
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            logger.debug(f"Unlink of {path}: already gone")
        except OSError as e:
            logger.error(f"Unlink {path} failed: {e}")
            raise StorageIOError("unlink", path, e) from e

