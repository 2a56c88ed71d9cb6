"""Filename derivation for uploaded university photos."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any

_UNSAFE_CHAR = re.compile(r"[^A-Za-z0-9._-]")
_EXTENSION = re.compile(r"\.[A-Za-z0-9]+$")

ID_PAD_WIDTH = 6
DEFAULT_EXTENSION = ".jpg"
DEFAULT_STEM = "image"

MEDIA_TYPE_EXTENSIONS: dict[str, str] = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
    "image/heic": ".heic",
    "image/heif": ".heif",
}


def sanitize_filename(name: str | None) -> str:
    """Drop directory components and replace unsafe characters with ``_``."""

    if not name:
        return ""
    base = re.split(r"[\\/]", name)[-1]
    return _UNSAFE_CHAR.sub("_", base)


def _split_extension(sanitized: str) -> tuple[str, str]:
    match = _EXTENSION.search(sanitized)
    if match is None or match.start() == 0:
        return sanitized, ""
    return sanitized[: match.start()], match.group(0)


def resolve_extension(sanitized: str, media_type: str | None) -> str:
    """Return the lower-cased extension of ``sanitized`` or one implied by ``media_type``.

    Falls back to ``.jpg`` when neither the name nor the media type yields one.
    """

    _, ext = _split_extension(sanitized)
    if ext:
        return ext.lower()
    normalized = (media_type or "").split(";", 1)[0].strip().lower()
    return MEDIA_TYPE_EXTENSIONS.get(normalized, DEFAULT_EXTENSION)


def pad_id(entity_id: Any, width: int = ID_PAD_WIDTH) -> str:
    """Left-pad an entity id with zeros, e.g. ``123`` -> ``"000123"``."""

    if isinstance(entity_id, int) and not isinstance(entity_id, bool) and entity_id >= 0:
        return str(entity_id).zfill(width)
    text = str(entity_id)
    if text.isdigit() and text.isascii():
        return str(int(text)).zfill(width)
    return text.rjust(width, "0")


def format_timestamp(now: datetime) -> str:
    """Format ``now`` as ``YYYYMMDDHHmmssSSS`` in local wall-clock time."""

    if now.tzinfo is not None:
        now = now.astimezone()
    return f"{now:%Y%m%d%H%M%S}{now.microsecond // 1000:03d}"


def derive_stored_filename(
    entity_id: Any,
    original_name: str | None,
    media_type: str | None,
    now: datetime,
) -> str:
    """Build the on-disk name for an uploaded photo.

    The result has the shape ``{padded id}-{timestamp}-{name}{ext}`` and only
    ever contains ``[A-Za-z0-9._-]``. The stem is stripped of leading and
    trailing ``._-`` so no ``.`` or ``..`` segment can survive sanitization.
    """

    sanitized = sanitize_filename(original_name)
    stem, _ = _split_extension(sanitized)
    stem = stem.strip("._-") or DEFAULT_STEM
    extension = resolve_extension(sanitized, media_type)
    return f"{pad_id(entity_id)}-{format_timestamp(now)}-{stem}{extension}"


__all__ = [
    "DEFAULT_EXTENSION",
    "ID_PAD_WIDTH",
    "MEDIA_TYPE_EXTENSIONS",
    "derive_stored_filename",
    "format_timestamp",
    "pad_id",
    "resolve_extension",
    "sanitize_filename",
]
