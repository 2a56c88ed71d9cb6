"""Local filesystem storage for uploaded photos."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

from .errors import StorageFailure, StoredFileExists

logger = logging.getLogger(__name__)


def _resolve_target(directory_root: Path, subpath: str, filename: str) -> Path:
    root = Path(directory_root).resolve()
    directory = (root / subpath).resolve()
    target = (directory / filename).resolve()
    if not target.is_relative_to(root) or target.parent != directory:
        raise StorageFailure(f"Refusing to write {filename!r} outside {root}")
    return target


def _write_file(target: Path, data: bytes) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    with open(target, "xb") as handle:
        try:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        except BaseException:
            handle.close()
            target.unlink(missing_ok=True)
            raise


class LocalBlobStore:
    """Write whole buffers under a directory root and remove them again."""

    async def write(
        self,
        directory_root: Path,
        subpath: str,
        filename: str,
        data: bytes,
    ) -> Path:
        """Persist ``data`` as ``directory_root/subpath/filename`` and return the path.

        Never replaces an existing file; a name clash raises ``StoredFileExists``.
        """

        target = _resolve_target(directory_root, subpath, filename)
        writer = asyncio.ensure_future(asyncio.to_thread(_write_file, target, data))
        try:
            await asyncio.shield(writer)
        except FileExistsError as exc:
            raise StoredFileExists(f"{target} already exists") from exc
        except OSError as exc:
            raise StorageFailure(f"Failed to write {target}: {exc}") from exc
        except asyncio.CancelledError:
            # The worker thread keeps running; wait for it, then drop its file.
            try:
                await writer
            except OSError:
                logger.debug("Write of %s failed after cancellation", target, exc_info=True)
            else:
                await self.remove(target)
            raise
        logger.debug("Wrote %d bytes to %s", len(data), target)
        return target

    async def remove(self, path: Path) -> bool:
        """Delete ``path`` if present. Never raises."""

        try:
            await asyncio.to_thread(Path(path).unlink, missing_ok=True)
        except OSError:
            logger.warning("Failed to remove stored photo %s", path, exc_info=True)
            return False
        return True


__all__ = ["LocalBlobStore"]
