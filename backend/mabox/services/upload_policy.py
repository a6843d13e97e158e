"""Which uploads are accepted at all. Checked by the upload route before staging."""
from pathlib import PurePosixPath
from typing import Optional

from mabox.services.errors import UploadRejected

# MIME type -> extensions it may carry
ALLOWED_FILE_TYPES = {
    # PDF
    "application/pdf": [".pdf"],
    # Images
    "image/jpeg": [".jpg", ".jpeg"],
    "image/png": [".png"],
    "image/gif": [".gif"],
    "image/webp": [".webp"],
    "image/svg+xml": [".svg"],
    "image/bmp": [".bmp"],
    "image/tiff": [".tiff", ".tif"],
    # Documents
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": [".docx"],
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": [".xlsx"],
    "text/csv": [".csv"],
    "application/csv": [".csv"],
    "text/plain": [".txt"],
    # Archives
    "application/zip": [".zip"],
    "application/x-zip-compressed": [".zip"],
    "application/x-rar-compressed": [".rar"],
    "application/vnd.rar": [".rar"],
}

ALLOWED_EXTENSIONS = frozenset(ext for exts in ALLOWED_FILE_TYPES.values() for ext in exts)

INVALID_TYPE_MESSAGE = (
    "File type not allowed. Only PDF, images (JPG, PNG, GIF, WebP, SVG, BMP, TIFF), "
    "DOCX, XLSX, CSV, ZIP, and RAR files are permitted."
)


def format_size_limit(max_bytes: int) -> str:
    gib = 1024 ** 3
    mib = 1024 ** 2
    if max_bytes % gib == 0:
        return f"{max_bytes // gib}GB"
    if max_bytes % mib == 0:
        return f"{max_bytes // mib}MB"
    return f"{max_bytes} bytes"


def too_large_message(max_bytes: int) -> str:
    return f"File too large. Maximum size is {format_size_limit(max_bytes)}."


def extension_of(filename: Optional[str]) -> str:
    return PurePosixPath(filename or "").suffix.lower()


def mime_matches_extension(filename: Optional[str], mime_type: Optional[str]) -> bool:
    """True if the declared MIME type lists this extension. Advisory only."""
    allowed = ALLOWED_FILE_TYPES.get((mime_type or "").lower())
    return bool(allowed) and extension_of(filename) in allowed


def check_file_type(filename: Optional[str], mime_type: Optional[str] = None) -> None:
    """Reject files whose extension is not on the allow-list.

    The extension decides. Browsers report generic or wrong MIME types often
    enough (application/octet-stream for .rar, text/plain for .csv) that the
    declared type is not used to reject.
    """
    if extension_of(filename) not in ALLOWED_EXTENSIONS:
        raise UploadRejected(INVALID_TYPE_MESSAGE)
