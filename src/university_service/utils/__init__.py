"""Utility helpers for university services."""

from .filenames import derive_stored_filename, pad_id, sanitize_filename

__all__ = ["derive_stored_filename", "pad_id", "sanitize_filename"]
