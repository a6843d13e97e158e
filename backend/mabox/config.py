"""Application configuration from environment variables."""
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All config comes from env vars or .env file."""

    UPLOAD_DIR: str = "./uploads"
    STAGING_DIR: str = ""  # empty = <UPLOAD_DIR>/.staging
    PUBLIC_BASE_URL: str = "http://localhost:3000"
    API_PORT: int = 3000
    CORS_ORIGINS: str = "*"
    LOG_LEVEL: str = "INFO"

    # Upload limits (enforced by the upload route before bytes reach the store)
    MAX_UPLOAD_BYTES: int = 1024 * 1024 * 1024  # 1 GiB
    DOWNLOAD_CHUNK_SIZE: int = 64 * 1024

    # Expiry sweeper
    SWEEP_INTERVAL_SECONDS: float = 10.0
    NAME_RESOLUTION_MAX_ATTEMPTS: int = 1000

    # Orphan reconciliation (blobs on disk with no record)
    RECONCILE_ON_STARTUP: bool = False
    SWEEP_RECONCILE_ORPHANS: bool = False
    ORPHAN_GRACE_SECONDS: float = 300.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def upload_path(self) -> Path:
        return Path(self.UPLOAD_DIR)

    @property
    def staging_path(self) -> Path:
        if self.STAGING_DIR:
            return Path(self.STAGING_DIR)
        return self.upload_path / ".staging"


settings = Settings()
