"""Staging area for uploads in flight.

The upload route streams the request body into a temp file here, then hands
the path to EphemeralStore.put(), which renames it into the blob directory.
The staging directory must be on the same filesystem as the blob directory.
"""
import asyncio
import logging
import shutil
import uuid
from pathlib import Path, PurePosixPath

import aiofiles
import aiofiles.os

from mabox.services.errors import StorageIOError, UploadRejected
from mabox.services.upload_policy import too_large_message

logger = logging.getLogger(__name__)

MAX_STAGED_EXT_LENGTH = 16


def staged_filename(original_name: str) -> str:
    ext = PurePosixPath(original_name or "").suffix
    if len(ext) > MAX_STAGED_EXT_LENGTH:
        ext = ""
    return f"temp_{uuid.uuid4().hex}{ext}"


async def discard_staged(path: Path) -> None:
    """Remove a staged file. Already absent counts as success."""
    try:
        await aiofiles.os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.error(f"Failed to remove staged file {path}: {e}")


async def stage_upload(upload, staging_dir: Path, max_bytes: int, chunk_size: int = 64 * 1024) -> tuple[Path, int]:
    """Copy an uploaded file (anything with an async read(n)) into the staging area.

    Returns (staged_path, size_bytes). Raises UploadRejected once more than
    max_bytes have been read; the partial file is removed.
    """
    staging_dir = Path(staging_dir)
    path = staging_dir / staged_filename(getattr(upload, "filename", "") or "")
    size = 0
    try:
        async with aiofiles.open(path, "wb") as f:
            while True:
                chunk = await upload.read(chunk_size)
                if not chunk:
                    break
                size += len(chunk)
                if size > max_bytes:
                    raise UploadRejected(too_large_message(max_bytes))
                await f.write(chunk)
    except OSError as e:
        await discard_staged(path)
        logger.error(f"Failed to stage upload at {path}: {e}")
        raise StorageIOError("stage", path, e) from e
    except BaseException:
        await discard_staged(path)
        raise
    return path, size


def _purge_dir(staging_dir: Path) -> int:
    count = 0
    for entry in staging_dir.iterdir():
        if entry.is_dir():
            shutil.rmtree(entry, ignore_errors=True)
        else:
            entry.unlink(missing_ok=True)
        count += 1
    return count


async def purge_staging(staging_dir: Path) -> int:
    """Empty the staging area. Anything left there is from a previous process."""
    staging_dir = Path(staging_dir)
    staging_dir.mkdir(parents=True, exist_ok=True)
    count = await asyncio.to_thread(_purge_dir, staging_dir)
    if count:
        logger.info(f"Removed {count} leftover staged upload(s) from {staging_dir}")
    return count
