"""Tests for the local file-system adapters."""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from sentinel_pipeline.core.exceptions import HandleDeclinedError, PermissionDenialError
from sentinel_pipeline.providers.local_storage import (
    DirectoryHandle,
    DirectoryStorageAccess,
    DownloadsFolderSink,
)


class TestDirectoryStorageAccess:
    @pytest.mark.asyncio()
    async def test_grants_and_creates_directory(self, tmp_path: Path) -> None:
        root = tmp_path / "exports"
        handle = await DirectoryStorageAccess(root).acquire_handle()

        path = await handle.write("FARM_20240105_T50HMK0.tif", b"II*\x00")

        assert isinstance(handle, DirectoryHandle)
        assert root.is_dir()
        assert Path(path).read_bytes() == b"II*\x00"

    @pytest.mark.asyncio()
    async def test_write_stays_inside_root(self, tmp_path: Path) -> None:
        handle = await DirectoryStorageAccess(tmp_path / "exports").acquire_handle()
        path = await handle.write("../../escape.tif", b"x")
        assert Path(path) == tmp_path / "exports" / "escape.tif"

    @pytest.mark.asyncio()
    async def test_confirmation_declined(self, tmp_path: Path) -> None:
        prompted: list[Path] = []

        def _confirm(root: Path) -> bool:
            prompted.append(root)
            return False

        access = DirectoryStorageAccess(tmp_path / "exports", confirm=_confirm)
        with pytest.raises(HandleDeclinedError):
            await access.acquire_handle()
        assert prompted == [tmp_path / "exports"]
        assert not (tmp_path / "exports").exists()

    @pytest.mark.asyncio()
    async def test_confirmation_accepted(self, tmp_path: Path) -> None:
        access = DirectoryStorageAccess(tmp_path / "exports", confirm=lambda root: True)
        assert await access.acquire_handle() is not None

    @pytest.mark.asyncio()
    async def test_mkdir_refused(self, tmp_path: Path) -> None:
        access = DirectoryStorageAccess(tmp_path / "exports")
        with (
            patch.object(Path, "mkdir", side_effect=PermissionError("read-only file system")),
            pytest.raises(PermissionDenialError, match="read-only"),
        ):
            await access.acquire_handle()

    @pytest.mark.asyncio()
    async def test_unwritable_directory(self, tmp_path: Path) -> None:
        access = DirectoryStorageAccess(tmp_path)
        with (
            patch("sentinel_pipeline.providers.local_storage.os.access", return_value=False),
            pytest.raises(PermissionDenialError) as exc_info,
        ):
            await access.acquire_handle()
        assert exc_info.value.code == "LOCAL_HANDLE_DENIED"


class TestDownloadsFolderSink:
    @pytest.mark.asyncio()
    async def test_saves_into_folder(self, tmp_path: Path) -> None:
        sink = DownloadsFolderSink(tmp_path / "Downloads")
        path = await sink.save("FARM_20240105_T50HMK0.tif", b"data")
        assert Path(path) == tmp_path / "Downloads" / "FARM_20240105_T50HMK0.tif"
        assert Path(path).read_bytes() == b"data"

    def test_defaults_to_home_downloads(self, tmp_path: Path) -> None:
        with patch.dict(os.environ, {"HOME": str(tmp_path)}):
            sink = DownloadsFolderSink()
        assert sink._folder == tmp_path / "Downloads"
