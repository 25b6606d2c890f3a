"""Local file-system adapters for the LOCAL export destination.

``DirectoryStorageAccess`` grants a write handle on an operator-chosen
output directory.  A directory the process may not write to is reported
as ``PermissionDenialError`` (which engages the download fallback); an
operator who answers "no" to the optional confirmation callback is
reported as ``HandleDeclinedError``.

``DownloadsFolderSink`` is the fallback: it drops artifacts into a
downloads folder that needs no grant.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING

from sentinel_pipeline.core.exceptions import HandleDeclinedError, PermissionDenialError
from sentinel_pipeline.providers.base import (
    ClientDownloadSink,
    LocalStorageAccess,
    LocalStorageHandle,
)

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


def _write_file(path: Path, data: bytes) -> str:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return str(path)


class DirectoryHandle(LocalStorageHandle):
    def __init__(self, root: Path) -> None:
        self._root = root

    @property
    def root(self) -> Path:
        return self._root

    async def write(self, filename: str, data: bytes) -> str:
        # Artifact names are flat; reject anything that would escape the root.
        target = self._root / Path(filename).name
        return await asyncio.to_thread(_write_file, target, data)


class DirectoryStorageAccess(LocalStorageAccess):
    """Grant write access to a directory.

    Args:
        root: Output directory; created on first grant if missing.
        confirm: Optional operator confirmation callback, called with the
            directory path; returning ``False`` declines the grant.
    """

    def __init__(
        self,
        root: str | Path,
        *,
        confirm: Callable[[Path], bool] | None = None,
    ) -> None:
        self._root = Path(root).expanduser()
        self._confirm = confirm

    async def acquire_handle(self) -> LocalStorageHandle:
        if self._confirm is not None and not self._confirm(self._root):
            msg = f"Operator declined write access to {self._root}"
            raise HandleDeclinedError(msg)

        try:
            await asyncio.to_thread(self._root.mkdir, parents=True, exist_ok=True)
        except PermissionError as exc:
            msg = f"Write access to {self._root} refused: {exc}"
            raise PermissionDenialError(msg) from exc

        if not os.access(self._root, os.W_OK):
            msg = f"Write access to {self._root} refused by file-system permissions"
            raise PermissionDenialError(msg)

        logger.info("Local write handle granted | root=%s", self._root)
        return DirectoryHandle(self._root)


class DownloadsFolderSink(ClientDownloadSink):
    """Save artifacts into a downloads folder (``~/Downloads`` by default)."""

    def __init__(self, folder: str | Path | None = None) -> None:
        self._folder = Path(folder).expanduser() if folder else Path.home() / "Downloads"

    async def save(self, filename: str, data: bytes) -> str:
        path = await asyncio.to_thread(_write_file, self._folder / Path(filename).name, data)
        logger.debug("Artifact saved via download sink | path=%s | bytes=%d", path, len(data))
        return path
