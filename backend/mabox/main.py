"""FastAPI application entry point."""
import logging
import time
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from mabox.config import settings
from mabox.dependencies import get_store
from mabox.logging_config import setup_logging
from mabox.schemas.common import ErrorResponse
from mabox.schemas.file import HealthResponse
from mabox.services.expiry_sweeper import ExpirySweeper
from mabox.services.file_storage import EphemeralStore
from mabox.services.staging import purge_staging

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}

FORBIDDEN_PREFIX = "/uploads"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the store, clean leftovers from a previous process, start the sweeper."""
    setup_logging(settings.LOG_LEVEL)

    store = EphemeralStore(
        settings.upload_path,
        public_base_url=settings.PUBLIC_BASE_URL,
        max_name_attempts=settings.NAME_RESOLUTION_MAX_ATTEMPTS,
    )
    await purge_staging(settings.staging_path)

    # The index starts empty, so every blob already on disk is an orphan
    if settings.RECONCILE_ON_STARTUP:
        orphans = await store.reconcile_orphans(grace_seconds=0)
        if orphans:
            logger.info(f"Removed {len(orphans)} orphaned blob(s) on startup")

    sweeper = ExpirySweeper(
        store,
        settings.SWEEP_INTERVAL_SECONDS,
        reconcile_orphans=settings.SWEEP_RECONCILE_ORPHANS,
        orphan_grace_seconds=settings.ORPHAN_GRACE_SECONDS,
    )
    await sweeper.run_once()
    sweeper.start()

    app.state.store = store
    app.state.sweeper = sweeper
    logger.info(f"Upload directory: {store.blob_dir}")

    yield

    await sweeper.stop()


app = FastAPI(
    title="Mabox API",
    version="1.0.0",
    description="Ephemeral file sharing: upload, share a link, gone after the TTL.",
    lifespan=lifespan,
)
app.state.started_at = time.monotonic()

# CORS
origins = [o.strip() for o in settings.CORS_ORIGINS.split(",")]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def security_headers(request: Request, call_next):
    """Block direct access to the blob directory; add security headers to every response."""
    path = request.url.path
    if path == FORBIDDEN_PREFIX or path.startswith(FORBIDDEN_PREFIX + "/"):
        response = JSONResponse(
            status_code=403,
            content=ErrorResponse(
                message="Direct access to uploads folder is forbidden. Use /files/{filename} endpoint instead."
            ).model_dump(),
        )
    else:
        response = await call_next(request)
    for name, value in SECURITY_HEADERS.items():
        response.headers[name] = value
    return response


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail
    if exc.status_code == 404 and message == "Not Found":
        message = "Endpoint not found"
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(message=str(message)).model_dump(),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(message="Invalid request").model_dump(),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(message="Internal server error").model_dump(),
    )


@app.get("/health", response_model=HealthResponse)
async def health_check(store: EphemeralStore = Depends(get_store)):
    """Liveness plus the number of files currently held."""
    return HealthResponse(
        uptime=round(time.monotonic() - app.state.started_at, 3),
        active_files=len(store),
    )


# Register routers
from mabox.routes.files import router as files_router
app.include_router(files_router)
