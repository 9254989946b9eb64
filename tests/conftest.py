#!/usr/bin/env python3
"""Pytest fixtures for pastelist tests.

Provides in-memory and SQLite-backed stores, record factories, and sync
configurations pointing at temporary folders.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from pastelist.config_store import MemoryConfigurationStore
from pastelist.database import create_database, sqlite_url
from pastelist.item_store import MemoryItemStore
from pastelist.models import ClipboardRecord
from pastelist.sync_config import (
    LocalFileSyncConfig,
    ServerSyncConfig,
    SyncConfiguration,
    encode_sync_settings,
)

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_record(
    content: str,
    device_id: str | None = "device-a",
    minutes: int = 0,
) -> ClipboardRecord:
    """Build a record created `minutes` after BASE_TIME."""
    created = BASE_TIME + timedelta(minutes=minutes)
    return ClipboardRecord(
        content=content, device_id=device_id, created_at=created, updated_at=created
    )


def make_configuration(settings, enabled: bool = True) -> SyncConfiguration:
    """Build a configuration row holding settings."""
    configuration = SyncConfiguration(is_enabled=enabled)
    encode_sync_settings(configuration, settings)
    return configuration


@pytest.fixture
def memory_store() -> MemoryItemStore:
    """Create an empty in-memory item store."""
    return MemoryItemStore()


@pytest.fixture
def session_factory(tmp_path: Path):
    """Create a SQLite database in a temporary directory."""
    return create_database(sqlite_url(str(tmp_path / "pastelist.db")))


@pytest.fixture
def sync_folder(tmp_path: Path) -> Path:
    """Provide an empty shared sync folder."""
    folder = tmp_path / "sync"
    folder.mkdir()
    return folder


@pytest.fixture
def local_settings(sync_folder: Path) -> LocalFileSyncConfig:
    """LocalFile settings pointing at the temporary sync folder."""
    return LocalFileSyncConfig(sync_folder_path=str(sync_folder), max_backup_files=2)


@pytest.fixture
def local_config_store(local_settings: LocalFileSyncConfig) -> MemoryConfigurationStore:
    """Configuration store with LocalFile sync enabled."""
    return MemoryConfigurationStore(make_configuration(local_settings))


@pytest.fixture
def server_settings() -> ServerSyncConfig:
    """Server settings for an in-process authority, without retries."""
    return ServerSyncConfig(
        server_url="http://testserver",
        device_id="device-a",
        access_token="token-alice",
        max_retry_attempts=0,
    )
