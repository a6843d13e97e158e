"""In-memory models for the ephemeral store."""
from mabox.models.file_record import FileRecord

__all__ = ["FileRecord"]
