"""Files API routes: upload, download, metadata."""
import logging
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File as FastAPIFile, Form, HTTPException, UploadFile
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from mabox.config import Settings
from mabox.dependencies import get_settings, get_store
from mabox.schemas.file import FileInfoData, FileInfoResponse, UploadData, UploadResponse
from mabox.services.errors import FileExpired, FileNotFound, StoreError, UploadRejected
from mabox.services.file_storage import EphemeralStore
from mabox.services.staging import discard_staged, stage_upload
from mabox.services.upload_policy import check_file_type, mime_matches_extension

logger = logging.getLogger(__name__)

router = APIRouter(tags=["files"])


def content_disposition(filename: str) -> str:
    """attachment header; non-ASCII names get an RFC 5987 filename* next to an ASCII fallback."""
    escaped = filename.replace("\\", "\\\\").replace('"', '\\"')
    if escaped.isascii() and escaped.isprintable():
        return f'attachment; filename="{escaped}"'
    fallback = escaped.encode("ascii", "replace").decode("ascii").replace("?", "_")
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


def _raise_for_lookup(e: StoreError, public_name: str):
    if isinstance(e, FileNotFound):
        raise HTTPException(404, "File not found")
    if isinstance(e, FileExpired):
        raise HTTPException(410, "File has expired")
    logger.error(f"Lookup of {public_name} failed: {e}")
    raise HTTPException(500, "Internal server error")


@router.post("/upload", response_model=UploadResponse)
async def upload_file(
    file: Optional[UploadFile] = FastAPIFile(None),
    ttl: Optional[str] = Form(None),
    file_name: Optional[str] = Form(None, alias="fileName"),
    store: EphemeralStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    """Upload a file and get a time-limited download link."""
    if file is None or not file.filename:
        raise HTTPException(400, "No file uploaded")

    original_name = file.filename
    try:
        check_file_type(original_name, file.content_type)
        staged_path, size = await stage_upload(
            file,
            settings.staging_path,
            settings.MAX_UPLOAD_BYTES,
        )
    except UploadRejected as e:
        raise HTTPException(400, e.message)
    except StoreError as e:
        logger.error(f"Upload error: {e}")
        raise HTTPException(500, "Internal server error")

    if not mime_matches_extension(original_name, file.content_type):
        logger.debug(f"Accepting {original_name} with declared type {file.content_type}")

    try:
        stored = await store.put(
            staged_path,
            original_name=original_name,
            size_bytes=size,
            mime_type=file.content_type,
            ttl=ttl,
            desired_name=file_name,
        )
    except StoreError as e:
        await discard_staged(staged_path)
        logger.error(f"Upload error: {e}")
        raise HTTPException(500, "Internal server error")

    return UploadResponse(data=UploadData.from_stored(stored, ttl))


@router.get("/files/{public_name}")
async def download_file(
    public_name: str,
    store: EphemeralStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    """Stream a file's bytes as an attachment."""
    try:
        download = await store.get(public_name)
    except StoreError as e:
        _raise_for_lookup(e, public_name)

    record = download.record
    headers = {
        "Content-Disposition": content_disposition(record.original_name),
        "Content-Type": record.mime_type,
        "Content-Length": str(record.size_bytes),
    }
    return StreamingResponse(
        download.iter_chunks(settings.DOWNLOAD_CHUNK_SIZE),
        headers=headers,
        background=BackgroundTask(download.aclose),
    )


@router.get("/info/{public_name}", response_model=FileInfoResponse)
async def get_file_info(
    public_name: str,
    store: EphemeralStore = Depends(get_store),
):
    """File metadata without the bytes."""
    try:
        record = await store.stat(public_name)
    except StoreError as e:
        _raise_for_lookup(e, public_name)
    return FileInfoResponse(data=FileInfoData.from_record(record))
