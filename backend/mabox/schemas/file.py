"""File upload/info response schemas."""
from datetime import datetime
from typing import Optional

from mabox.models.file_record import FileRecord
from mabox.schemas.base import CamelModel
from mabox.services.file_storage import StoredFile


class UploadData(CamelModel):
    file_name: str
    original_name: str
    file_size: int
    download_url: str
    expires_at: datetime
    ttl: Optional[str] = None

    @classmethod
    def from_stored(cls, stored: StoredFile, ttl: Optional[str]) -> "UploadData":
        record = stored.record
        return cls(
            file_name=record.public_name,
            original_name=record.original_name,
            file_size=record.size_bytes,
            download_url=stored.download_url,
            expires_at=record.expires_at,
            ttl=ttl,
        )


class FileInfoData(CamelModel):
    file_name: str
    original_name: str
    size: int
    mimetype: str
    uploaded_at: datetime
    expires_at: datetime

    @classmethod
    def from_record(cls, record: FileRecord) -> "FileInfoData":
        return cls(
            file_name=record.public_name,
            original_name=record.original_name,
            size=record.size_bytes,
            mimetype=record.mime_type,
            uploaded_at=record.uploaded_at,
            expires_at=record.expires_at,
        )


class UploadResponse(CamelModel):
    success: bool = True
    message: str = "File uploaded successfully"
    data: UploadData


class FileInfoResponse(CamelModel):
    success: bool = True
    message: str = ""
    data: FileInfoData


class HealthResponse(CamelModel):
    success: bool = True
    message: str = "Server is running"
    uptime: float
    active_files: int
