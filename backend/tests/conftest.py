"""
Mabox - Test Configuration and Fixtures
"""
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from mabox.config import Settings
from mabox.dependencies import get_settings, get_store
from mabox.main import app
from mabox.services.file_storage import EphemeralStore


class FakeClock:
    """Manually advanced clock so expiry tests never sleep."""

    def __init__(self, start: datetime = None):
        self._now = start or datetime.now(timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def blob_dir(tmp_path: Path) -> Path:
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
def staging_dir(blob_dir: Path) -> Path:
    path = blob_dir / ".staging"
    path.mkdir()
    return path


@pytest.fixture
def store(blob_dir: Path, clock: FakeClock) -> EphemeralStore:
    return EphemeralStore(blob_dir, clock=clock, public_base_url="https://mabox.test")


@pytest.fixture
def stage(staging_dir: Path):
    """Write bytes into the staging area the way the upload route does; returns the path."""
    counter = {"n": 0}

    def _stage(content: bytes = b"hello world", suffix: str = ".txt") -> Path:
        counter["n"] += 1
        path = staging_dir / f"temp_{counter['n']:032x}{suffix}"
        path.write_bytes(content)
        return path

    return _stage


@pytest.fixture
def test_settings(blob_dir: Path, staging_dir: Path) -> Settings:
    return Settings(
        UPLOAD_DIR=str(blob_dir),
        STAGING_DIR=str(staging_dir),
        PUBLIC_BASE_URL="https://mabox.test",
        MAX_UPLOAD_BYTES=1024,
    )


@pytest.fixture
async def client(store: EphemeralStore, test_settings: Settings) -> AsyncGenerator[AsyncClient, None]:
    """Test client wired to the per-test store and settings"""
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_settings] = lambda: test_settings

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
