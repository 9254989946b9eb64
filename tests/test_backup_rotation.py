#!/usr/bin/env python3
"""Tests for snapshot backups and their rotation."""

from datetime import datetime
from pathlib import Path

import pytest

from pastelist.backup_rotation import (
    backup_and_rotate,
    backup_path,
    cleanup_backups,
    list_backups,
)


def _seed_backups(snapshot: Path, count: int) -> list[Path]:
    paths = []
    for day in range(1, count + 1):
        path = backup_path(snapshot, datetime(2024, 1, day, 9, 30, 0))
        path.write_text("[]", encoding="utf-8")
        paths.append(path)
    return paths


class TestBackupRotation:
    """Tests for backup naming, creation and cleanup."""

    def test_backup_name_pattern(self, tmp_path: Path) -> None:
        snapshot = tmp_path / "pasteList_sync.json"
        path = backup_path(snapshot, datetime(2024, 3, 9, 7, 5, 1))
        assert path.name == "pasteList_sync_backup_20240309_070501.json"
        assert path.parent == tmp_path

    @pytest.mark.asyncio
    async def test_no_backup_without_snapshot(self, tmp_path: Path) -> None:
        snapshot = tmp_path / "pasteList_sync.json"
        assert await backup_and_rotate(snapshot, 2) is None
        assert list_backups(snapshot) == []

    @pytest.mark.asyncio
    async def test_keeps_newest_max_backups(self, tmp_path: Path) -> None:
        snapshot = tmp_path / "pasteList_sync.json"
        snapshot.write_text('[{"content": "current"}]', encoding="utf-8")
        _seed_backups(snapshot, 5)

        created = await backup_and_rotate(snapshot, 2, now=datetime(2024, 2, 1, 8, 0, 0))

        remaining = list_backups(snapshot)
        assert len(remaining) == 2
        assert remaining[0] == created
        assert remaining[1].name == "pasteList_sync_backup_20240105_093000.json"
        assert created.read_text(encoding="utf-8") == snapshot.read_text(encoding="utf-8")

    @pytest.mark.asyncio
    async def test_cleanup_continues_after_delete_failure(self, tmp_path: Path, monkeypatch) -> None:
        snapshot = tmp_path / "pasteList_sync.json"
        seeded = _seed_backups(snapshot, 4)
        original_unlink = Path.unlink

        def flaky_unlink(self, *args, **kwargs):
            if self == seeded[1]:
                raise PermissionError("locked")
            return original_unlink(self, *args, **kwargs)

        monkeypatch.setattr(Path, "unlink", flaky_unlink)
        deleted = await cleanup_backups(snapshot, 1)

        assert deleted == [seeded[2], seeded[0]]
        assert seeded[1].exists()

    @pytest.mark.asyncio
    async def test_creation_failure_does_not_raise(self, tmp_path: Path, monkeypatch) -> None:
        snapshot = tmp_path / "pasteList_sync.json"
        snapshot.write_text("[]", encoding="utf-8")

        def failing_copy(*args, **kwargs):
            raise OSError("read-only")

        monkeypatch.setattr("pastelist.backup_rotation.shutil.copy2", failing_copy)
        assert await backup_and_rotate(snapshot, 2) is None
