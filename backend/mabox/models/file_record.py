"""FileRecord - metadata for one stored blob (bytes live in the upload directory)."""
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class FileRecord:
    """Immutable value object. Expiry changes only by deleting the record."""

    public_name: str
    original_name: str
    size_bytes: int
    mime_type: str
    uploaded_at: datetime
    expires_at: datetime

    def __post_init__(self):
        if self.size_bytes < 0:
            raise ValueError(f"size_bytes must be non-negative, got {self.size_bytes}")
        if self.expires_at <= self.uploaded_at:
            raise ValueError("expires_at must be later than uploaded_at")

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now
