"""Routes for reading universities and uploading their photos."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile, status

from ..auth import require_api_token
from ..repository import UniversityRepository
from ..schemas.universities import ApiResponse, PhotoUploadResponse, UploadedBlob
from ..services.errors import (
    InvalidUpload,
    PersistenceFailure,
    StorageFailure,
    UniversityNotFound,
    UniversityPhotoError,
)
from ..services.university_photos import UniversityPhotoService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/universities",
    tags=["universities"],
    dependencies=[Depends(require_api_token)],
)

_NOT_FOUND = "University not found"
_SERVER_ERROR = "Internal server error"


def get_repository(request: Request) -> UniversityRepository:
    repository = getattr(request.app.state, "university_repository", None)
    if repository is None:
        raise HTTPException(status_code=500, detail="University repository unavailable")
    return repository


def get_photo_service(request: Request) -> UniversityPhotoService:
    service = getattr(request.app.state, "university_photo_service", None)
    if service is None:
        raise HTTPException(status_code=500, detail="Photo service unavailable")
    return service


async def _read_upload(upload: UploadFile, max_size_bytes: int) -> bytes:
    """Buffer the upload, stopping once it is known to exceed ``max_size_bytes``.

    The size check itself is left to the photo service so that a missing
    university is reported before an oversized file.
    """

    chunk_size = 1024 * 1024  # 1 MiB
    size = 0
    chunks: list[bytes] = []
    try:
        while size <= max_size_bytes:
            chunk = await upload.read(chunk_size)
            if not chunk:
                break
            size += len(chunk)
            chunks.append(chunk)
    finally:
        await upload.close()
    return b"".join(chunks)


def _server_error(exc: Exception, message: str) -> HTTPException:
    logger.error("%s: %s", message, exc)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=_SERVER_ERROR)


@router.get("", response_model=ApiResponse)
async def list_universities(
    repository: UniversityRepository = Depends(get_repository),
) -> ApiResponse:
    try:
        universities = await repository.get_all()
    except Exception as exc:
        raise _server_error(exc, "Failed to list universities") from exc
    return ApiResponse(data=universities)


@router.get("/{university_id}", response_model=ApiResponse)
async def get_university(
    university_id: int,
    repository: UniversityRepository = Depends(get_repository),
) -> ApiResponse:
    try:
        university = await repository.get_by_id(university_id)
    except Exception as exc:
        raise _server_error(exc, f"Failed to load university {university_id}") from exc
    if university is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_NOT_FOUND)
    return ApiResponse(data=university)


@router.get("/{university_id}/carreras", response_model=ApiResponse)
async def list_carreras(
    university_id: int,
    repository: UniversityRepository = Depends(get_repository),
) -> ApiResponse:
    try:
        carreras = await repository.get_carreras_by_universidad(university_id)
    except Exception as exc:
        raise _server_error(exc, f"Failed to load careers for university {university_id}") from exc
    if carreras is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_NOT_FOUND)
    return ApiResponse(data=carreras)


@router.get("/{university_id}/carreras-with-categorias", response_model=ApiResponse)
async def list_carreras_with_categorias(
    university_id: int,
    repository: UniversityRepository = Depends(get_repository),
) -> ApiResponse:
    try:
        carreras = await repository.get_carreras_with_categorias(university_id)
    except Exception as exc:
        raise _server_error(
            exc, f"Failed to load careers with categories for university {university_id}"
        ) from exc
    if carreras is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_NOT_FOUND)
    return ApiResponse(data=carreras)


@router.post(
    "/{university_id}/photo",
    response_model=PhotoUploadResponse,
    status_code=status.HTTP_201_CREATED,
)
async def upload_photo(
    university_id: int,
    service: UniversityPhotoService = Depends(get_photo_service),
    image: UploadFile | None = File(default=None),
) -> PhotoUploadResponse:
    try:
        blob: UploadedBlob | None = None
        if image is not None:
            data = await _read_upload(image, service.max_size_bytes)
            blob = UploadedBlob(
                data=data,
                content_type=image.content_type or "application/octet-stream",
                filename=image.filename,
            )
        result = await service.upload_photo(university_id, blob)
    except UniversityNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_NOT_FOUND) from exc
    except InvalidUpload as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except (StorageFailure, PersistenceFailure) as exc:
        raise _server_error(exc, "Photo upload failed") from exc
    except UniversityPhotoError as exc:
        # Already logged with its traceback by the photo service.
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=_SERVER_ERROR
        ) from exc

    return PhotoUploadResponse(id=result.id, filename=result.filename, url=result.url)


__all__ = ["router", "get_repository", "get_photo_service"]
