"""Collision-free public names for uploaded files."""
import logging
from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import Iterator, Optional

from mabox.services.errors import NameResolutionExhausted, StorageIOError
from mabox.services.metadata_index import MetadataIndex

logger = logging.getLogger(__name__)

FALLBACK_NAME = "unnamed"
DEFAULT_MAX_ATTEMPTS = 1000
# Filesystem limit is 255 bytes; leave room for a "(n)" counter
MAX_NAME_BYTES = 240


def sanitize_name(name: Optional[str]) -> str:
    """Reduce a client-supplied name to a bare filename.

    Directory components are dropped for both separator styles. Returns ""
    when nothing usable is left.
    """
    if not name:
        return ""
    bare = PureWindowsPath(PurePosixPath(name.strip()).name).name.strip()
    if bare in ("", ".", ".."):
        return ""
    return bare


def _truncate_utf8(text: str, max_bytes: int) -> str:
    return text.encode("utf-8")[:max_bytes].decode("utf-8", "ignore")


def fit_name(filename: str, max_bytes: int = MAX_NAME_BYTES) -> str:
    """Shorten an over-long name, keeping its extension when the extension itself fits."""
    if len(filename.encode("utf-8")) <= max_bytes:
        return filename
    stem, ext = split_name(filename)
    ext_bytes = len(ext.encode("utf-8"))
    if ext_bytes >= max_bytes // 2:
        return _truncate_utf8(filename, max_bytes)
    return _truncate_utf8(stem, max_bytes - ext_bytes) + ext


def split_name(filename: str) -> tuple[str, str]:
    """Split into (stem, extension) the way the disambiguator needs it: 'a.tar.gz' -> ('a.tar', '.gz')."""
    path = PurePosixPath(filename)
    suffix = path.suffix
    if not suffix:
        return filename, ""
    return filename[: -len(suffix)], suffix


def base_name(desired_name: Optional[str], original_name: Optional[str]) -> str:
    """Pick the name to disambiguate.

    A desired name without an extension inherits the original upload's
    extension. Without a usable desired name the original name is used.
    The result is capped at MAX_NAME_BYTES of UTF-8.
    """
    original = sanitize_name(original_name)
    desired = sanitize_name(desired_name)
    if desired:
        if PurePosixPath(desired).suffix:
            return fit_name(desired)
        return fit_name(desired + PurePosixPath(original).suffix)
    return fit_name(original) if original else FALLBACK_NAME


def candidate_names(filename: str, max_attempts: int) -> Iterator[str]:
    """Yield `name.ext`, `name(1).ext`, `name(2).ext`, ... up to max_attempts names."""
    if max_attempts < 1:
        return
    yield filename
    stem, ext = split_name(filename)
    for counter in range(1, max_attempts):
        yield f"{stem}({counter}){ext}"


class NameResolver:
    """Hands out public names that collide with neither the index nor the blob directory."""

    def __init__(self, blob_dir: Path, index: MetadataIndex, max_attempts: int = DEFAULT_MAX_ATTEMPTS):
        self.blob_dir = Path(blob_dir)
        self.index = index
        self.max_attempts = max_attempts

    def _free_on_disk(self, name: str) -> bool:
        path = self.blob_dir / name
        try:
            return not path.exists()
        except OSError as e:
            logger.error(f"Cannot check {path}: {e}")
            raise StorageIOError("resolve", path, e) from e

    def resolve(self, desired_name: Optional[str], original_name: Optional[str]) -> str:
        """Reserve and return a unique public name.

        The caller owns the reservation and must either commit a record under
        it or release it.
        """
        name = base_name(desired_name, original_name)
        claimed = self.index.claim(candidate_names(name, self.max_attempts), self._free_on_disk)
        if claimed is None:
            logger.error(f"Name resolution exhausted for '{name}' after {self.max_attempts} attempts")
            raise NameResolutionExhausted(name, self.max_attempts)
        if claimed != name:
            logger.debug(f"Name '{name}' taken, using '{claimed}'")
        return claimed
