"""FastAPI dependencies.

Usage in routes:
    from mabox.dependencies import get_store

    @router.get("/files/{name}")
    async def download(name: str, store: EphemeralStore = Depends(get_store)):
        ...
"""
from fastapi import Request

from mabox.config import Settings, settings
from mabox.services.file_storage import EphemeralStore


def get_store(request: Request) -> EphemeralStore:
    """The store created by the app lifespan."""
    return request.app.state.store


def get_settings() -> Settings:
    return settings
