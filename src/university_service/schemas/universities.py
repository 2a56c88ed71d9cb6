"""Pydantic models for university records and photo uploads."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import BaseModel


class University(BaseModel):
    """A university record as stored by the repository."""

    id: int
    name: str
    acronym: str | None = None
    city: str | None = None
    website: str | None = None
    image: str | None = None


@dataclass(frozen=True)
class UploadedBlob:
    """An uploaded file, fully buffered, as received from the client."""

    data: bytes
    content_type: str
    filename: str | None = None

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class PhotoUploadResult:
    id: int
    filename: str
    url: str
    path: Path


class ApiResponse(BaseModel):
    success: bool = True
    data: Any = None


class PhotoUploadResponse(BaseModel):
    success: bool = True
    id: int
    filename: str
    url: str


__all__ = [
    "ApiResponse",
    "PhotoUploadResponse",
    "PhotoUploadResult",
    "University",
    "UploadedBlob",
]
