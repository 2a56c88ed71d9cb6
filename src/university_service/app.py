"""Application factory for the FastAPI service."""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import PROJECT_ROOT, get_settings
from .repository import UniversityRepository
from .routers.universities import router as universities_router
from .services.blob_store import LocalBlobStore
from .services.university_photos import UniversityPhotoService

logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    """Configure logging based on LOG_LEVEL environment variable."""
    # Load .env file first to ensure LOG_FILE is available
    load_dotenv()

    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_str, logging.INFO)
    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    handlers: list[logging.Handler] = []

    log_file = os.getenv("LOG_FILE")
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    logging.basicConfig(
        level=log_level,
        handlers=handlers,
        force=True,  # Override any existing configuration
    )

    logging.getLogger("university_service").setLevel(log_level)
    logging.getLogger("uvicorn").setLevel(log_level)
    logging.getLogger("uvicorn.access").setLevel(log_level)
    logging.getLogger("uvicorn.error").setLevel(log_level)

    # aiosqlite logs every statement at DEBUG
    if log_level > logging.DEBUG:
        logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def _resolve_under(base: Path, p: Path) -> Path:
    # Allow absolute paths as-is (useful for tests and external mounts).
    if p.is_absolute():
        return p.resolve()
    resolved = (base / p).resolve()
    if not resolved.is_relative_to(base):
        raise ValueError(f"Configured path {resolved} escapes project root {base}")
    return resolved


def _error_body(message: object) -> dict[str, object]:
    return {"success": False, "message": message}


def create_app() -> FastAPI:
    # Configure logging first thing
    _configure_logging()

    settings = get_settings()

    database_path = _resolve_under(PROJECT_ROOT, settings.database_path)
    uploads_root = _resolve_under(PROJECT_ROOT, settings.uploads_dir)
    photos_dir = (uploads_root / settings.university_uploads_subpath).resolve()
    if not photos_dir.is_relative_to(uploads_root):
        raise ValueError(f"Upload subpath {photos_dir} escapes uploads root {uploads_root}")
    photos_dir.mkdir(parents=True, exist_ok=True)

    repository = UniversityRepository(database_path)
    photo_service = UniversityPhotoService(
        repository,
        LocalBlobStore(),
        upload_root=uploads_root,
        upload_subpath=settings.university_uploads_subpath,
        public_url_prefix=settings.university_static_url,
        max_size_bytes=settings.photo_max_size_bytes,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await repository.initialize()
        logger.info("University repository ready at %s", database_path)
        try:
            yield
        finally:
            await repository.close()

    app = FastAPI(
        title="University Service",
        version="0.1.0",
        description="University records with photo uploads.",
        lifespan=lifespan,
    )

    app.state.university_repository = repository
    app.state.university_photo_service = photo_service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.detail),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_error_body("Invalid request"),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unexpected error handling %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body("Internal server error"),
        )

    app.include_router(universities_router)
    app.mount(
        settings.university_static_url.rstrip("/"),
        StaticFiles(directory=photos_dir),
        name="university-photos",
    )

    @app.get("/health", tags=["health"])
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    return app


__all__ = ["create_app"]
