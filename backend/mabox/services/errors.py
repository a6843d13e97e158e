"""Store exceptions.

Routes translate these into HTTP responses:

    FileNotFound            -> 404
    FileExpired             -> 410
    UploadRejected          -> 400
    anything else           -> 500 (opaque "Internal server error")
"""
from typing import Optional


class StoreError(Exception):
    """Base exception for all ephemeral store errors."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class FileNotFound(StoreError):
    """No record for the name, or the record's blob was missing (and has been dropped)."""

    code = "NOT_FOUND"

    def __init__(self, public_name: str):
        self.public_name = public_name
        super().__init__(f"File not found: {public_name}")


class FileExpired(StoreError):
    """The record existed but its TTL had elapsed. It has been evicted."""

    code = "EXPIRED"

    def __init__(self, public_name: str):
        self.public_name = public_name
        super().__init__(f"File has expired: {public_name}")


class NameResolutionExhausted(StoreError):
    """No free disambiguated name was found within the attempt cap."""

    code = "NAME_RESOLUTION_EXHAUSTED"

    def __init__(self, base_name: str, attempts: int):
        self.base_name = base_name
        self.attempts = attempts
        super().__init__(f"No free name for '{base_name}' after {attempts} attempts")


class StorageIOError(StoreError):
    """A rename/unlink/open failed for a reason other than the file already being gone."""

    code = "STORAGE_IO"

    def __init__(self, operation: str, path, cause: Optional[BaseException] = None):
        self.operation = operation
        self.path = str(path)
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"{operation} failed for {self.path}{detail}")


class UploadRejected(StoreError):
    """Raised by the upload boundary (type not allowed, too large, missing file)."""

    code = "UPLOAD_REJECTED"
