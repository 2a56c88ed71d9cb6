"""Errors raised by the university photo workflow."""

from __future__ import annotations


class UniversityPhotoError(RuntimeError):
    """Base error raised for photo upload failures."""


class UniversityNotFound(UniversityPhotoError):
    """Raised when the target university record does not exist."""


class InvalidUpload(UniversityPhotoError):
    """Raised when the upload is missing, not an image, empty, or oversized."""


class StorageFailure(UniversityPhotoError):
    """Raised when the photo cannot be written to disk."""


class StoredFileExists(StorageFailure):
    """Raised when the derived filename is already taken on disk."""


class PersistenceFailure(UniversityPhotoError):
    """Raised when the record update affected no rows."""


class UnexpectedFailure(UniversityPhotoError):
    """Raised for any other failure during the upload."""


__all__ = [
    "InvalidUpload",
    "PersistenceFailure",
    "StorageFailure",
    "StoredFileExists",
    "UnexpectedFailure",
    "UniversityNotFound",
    "UniversityPhotoError",
]
