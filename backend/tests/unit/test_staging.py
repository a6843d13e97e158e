"""
Unit Tests for upload staging and the upload policy
"""
import io

import pytest

from mabox.services.errors import UploadRejected
from mabox.services.staging import discard_staged, purge_staging, stage_upload, staged_filename
from mabox.services.upload_policy import (
    check_file_type,
    format_size_limit,
    mime_matches_extension,
    too_large_message,
)


class FakeUpload:
    """Minimal stand-in for an UploadFile: async read(n) over in-memory bytes"""

    def __init__(self, content: bytes, filename: str = "a.txt"):
        self.filename = filename
        self._buffer = io.BytesIO(content)

    async def read(self, size: int = -1) -> bytes:
        return self._buffer.read(size)


class TestUploadPolicy:
    """Extension allow-list"""

    @pytest.mark.parametrize("filename", [
        "report.pdf", "PHOTO.JPG", "a.jpeg", "b.png", "c.gif", "d.webp", "e.svg",
        "f.bmp", "g.tiff", "h.tif", "i.docx", "j.xlsx", "k.csv", "l.txt", "m.zip", "n.rar",
    ])
    def test_allowed(self, filename):
        check_file_type(filename, "application/octet-stream")

    @pytest.mark.parametrize("filename", ["run.exe", "script.sh", "page.html", "noext", "", None])
    def test_rejected(self, filename):
        with pytest.raises(UploadRejected) as exc_info:
            check_file_type(filename, "text/plain")
        assert "File type not allowed" in exc_info.value.message

    def test_mismatched_mime_is_still_accepted(self):
        check_file_type("data.csv", "text/plain")
        assert not mime_matches_extension("data.csv", "text/plain")
        assert mime_matches_extension("data.csv", "text/csv")

    def test_size_messages(self):
        assert format_size_limit(1024 ** 3) == "1GB"
        assert format_size_limit(5 * 1024 ** 2) == "5MB"
        assert format_size_limit(1000) == "1000 bytes"
        assert too_large_message(1024 ** 3) == "File too large. Maximum size is 1GB."


class TestStageUpload:
    """Streaming an upload into the staging area"""

    def test_staged_filename_keeps_extension(self):
        name = staged_filename("report.pdf")
        assert name.startswith("temp_")
        assert name.endswith(".pdf")
        assert len(name) == len("temp_") + 32 + len(".pdf")

    def test_staged_filename_drops_overlong_extension(self):
        name = staged_filename("a." + "x" * 300)

        assert name.startswith("temp_")
        assert len(name) == len("temp_") + 32

    async def test_writes_all_bytes(self, staging_dir):
        content = b"x" * 200_000

        path, size = await stage_upload(FakeUpload(content), staging_dir, max_bytes=1_000_000, chunk_size=4096)

        assert size == len(content)
        assert path.parent == staging_dir
        assert path.read_bytes() == content

    async def test_exact_limit_is_allowed(self, staging_dir):
        path, size = await stage_upload(FakeUpload(b"x" * 100), staging_dir, max_bytes=100, chunk_size=7)

        assert size == 100

    async def test_over_limit_rejected_and_removed(self, staging_dir):
        with pytest.raises(UploadRejected) as exc_info:
            await stage_upload(FakeUpload(b"x" * 101), staging_dir, max_bytes=100, chunk_size=7)

        assert "File too large" in exc_info.value.message
        assert list(staging_dir.iterdir()) == []

    async def test_discard_is_idempotent(self, staging_dir):
        path, _ = await stage_upload(FakeUpload(b"x"), staging_dir, max_bytes=10)

        await discard_staged(path)
        await discard_staged(path)

        assert not path.exists()


class TestPurgeStaging:
    """Startup cleanup of the staging area"""

    async def test_purges_leftovers(self, staging_dir):
        (staging_dir / "temp_1.txt").write_text("x")
        (staging_dir / "nested").mkdir()
        (staging_dir / "nested" / "f").write_text("x")

        count = await purge_staging(staging_dir)

        assert count == 2
        assert list(staging_dir.iterdir()) == []

    async def test_creates_missing_directory(self, tmp_path):
        target = tmp_path / "new" / ".staging"

        assert await purge_staging(target) == 0
        assert target.is_dir()
