"""Upload university photos and link them to the university record."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Protocol

from ..schemas.universities import PhotoUploadResult, University, UploadedBlob
from ..utils.filenames import derive_stored_filename
from .blob_store import LocalBlobStore
from .errors import (
    InvalidUpload,
    PersistenceFailure,
    StoredFileExists,
    UnexpectedFailure,
    UniversityNotFound,
    UniversityPhotoError,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_PHOTO_BYTES = 5 * 1024 * 1024
_MAX_NAME_ATTEMPTS = 5


class UniversityGateway(Protocol):
    async def get_by_id(self, university_id: int) -> University | None: ...

    async def update(self, university: University) -> int: ...


class UniversityPhotoService:
    """Validate, store, and link photos for university records.

    Uploads for the same university are serialized so the stored ``image``
    always points at the file written by the last committed upload. Any failure
    after the file is written removes it again before the error propagates.
    """

    def __init__(
        self,
        gateway: UniversityGateway,
        blob_store: LocalBlobStore,
        *,
        upload_root: Path,
        upload_subpath: str = "universities",
        public_url_prefix: str = "/static/universities",
        max_size_bytes: int = DEFAULT_MAX_PHOTO_BYTES,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._gateway = gateway
        self._blob_store = blob_store
        self._upload_root = upload_root
        self._upload_subpath = upload_subpath
        self._public_url_prefix = public_url_prefix.rstrip("/")
        self._max_size_bytes = max_size_bytes
        self._clock = clock
        self._locks: dict[int, asyncio.Lock] = {}
        self._lock_users: dict[int, int] = {}

    @property
    def max_size_bytes(self) -> int:
        return self._max_size_bytes

    def validate(self, blob: UploadedBlob | None) -> UploadedBlob:
        """Return ``blob`` if it is an acceptable image upload."""

        if blob is None:
            raise InvalidUpload("No image file was attached")
        content_type = (blob.content_type or "").lower()
        if not content_type.startswith("image/"):
            raise InvalidUpload(f"Only image uploads are allowed, got {content_type or 'unknown'}")
        if not blob.data:
            raise InvalidUpload("Uploaded file was empty")
        if blob.size > self._max_size_bytes:
            raise InvalidUpload(f"Image exceeded {self._max_size_bytes} bytes limit")
        return blob

    def public_url(self, filename: str) -> str:
        return f"{self._public_url_prefix}/{filename}"

    async def upload_photo(
        self, university_id: int, blob: UploadedBlob | None
    ) -> PhotoUploadResult:
        """Store ``blob`` and point the university's ``image`` at it."""

        lock = self._locks.setdefault(university_id, asyncio.Lock())
        self._lock_users[university_id] = self._lock_users.get(university_id, 0) + 1
        try:
            async with lock:
                return await self._upload_locked(university_id, blob)
        except UniversityPhotoError:
            raise
        except Exception as exc:
            logger.exception("Unexpected failure uploading photo for university %s", university_id)
            raise UnexpectedFailure(str(exc)) from exc
        finally:
            self._lock_users[university_id] -= 1
            if not self._lock_users[university_id]:
                del self._lock_users[university_id]
                del self._locks[university_id]

    async def _write_unique(
        self, university_id: int, blob: UploadedBlob
    ) -> tuple[str, Path]:
        # A repeated clock reading must never overwrite an existing photo.
        now = self._clock()
        for _ in range(_MAX_NAME_ATTEMPTS - 1):
            filename = derive_stored_filename(
                university_id, blob.filename, blob.content_type, now
            )
            try:
                path = await self._blob_store.write(
                    self._upload_root, self._upload_subpath, filename, blob.data
                )
            except StoredFileExists:
                logger.debug("Photo name %s already taken, advancing timestamp", filename)
                now += timedelta(milliseconds=1)
                continue
            return filename, path

        filename = derive_stored_filename(university_id, blob.filename, blob.content_type, now)
        path = await self._blob_store.write(
            self._upload_root, self._upload_subpath, filename, blob.data
        )
        return filename, path

    async def _upload_locked(
        self, university_id: int, blob: UploadedBlob | None
    ) -> PhotoUploadResult:
        university = await self._gateway.get_by_id(university_id)
        if university is None:
            raise UniversityNotFound(f"University {university_id} not found")
        blob = self.validate(blob)

        filename, path = await self._write_unique(university_id, blob)
        url = self.public_url(filename)

        committed = False
        try:
            updated = await self._gateway.update(university.model_copy(update={"image": url}))
            if not updated or updated <= 0:
                raise PersistenceFailure(
                    f"Failed to update image for university {university_id}"
                )
            committed = True
        finally:
            if not committed:
                logger.warning(
                    "Removing photo %s after failed update of university %s",
                    filename,
                    university_id,
                )
                await self._blob_store.remove(path)

        logger.info(
            "Stored photo %s (%s, %d bytes) for university %s",
            filename,
            blob.content_type,
            blob.size,
            university_id,
        )
        return PhotoUploadResult(id=university_id, filename=filename, url=url, path=path)


__all__ = ["DEFAULT_MAX_PHOTO_BYTES", "UniversityGateway", "UniversityPhotoService"]
