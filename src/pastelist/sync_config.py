#!/usr/bin/env python3
"""Sync configuration row and its per-type settings payload.

A SyncConfiguration row carries an opaque config_data string whose shape
depends on sync_type. decode_sync_settings() turns it into one of the
typed variants at the boundary so the rest of the engine never handles
the raw payload:

- SyncType.LOCAL_FILE -> LocalFileSyncConfig
- SyncType.SERVER     -> ServerSyncConfig
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Union
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from pastelist.errors import SyncConfigurationError, UnsupportedSyncTypeError
from pastelist.models import utcnow

logger = logging.getLogger(__name__)

# Snapshot file written inside the sync folder.
SNAPSHOT_FILE_NAME: str = "pasteList_sync.json"

# Path prefix of the remote authority's API.
API_PREFIX: str = "/api/v1"


class SyncType(str, Enum):
    """Where synchronization exchanges data."""

    LOCAL_FILE = "LocalFile"
    SERVER = "Server"


class ConflictStrategy(str, Enum):
    """How a content collision with divergent metadata is resolved."""

    KEEP_NEWER = "KeepNewer"
    KEEP_BOTH = "KeepBoth"
    KEEP_LOCAL = "KeepLocal"
    KEEP_REMOTE = "KeepRemote"


class SyncDirection(str, Enum):
    """Which way data flows during a server sync."""

    PUSH_ONLY = "PushOnly"
    PULL_ONLY = "PullOnly"
    BIDIRECTIONAL = "Bidirectional"


def default_sync_folder() -> str:
    """Return the default local sync folder under the user's documents."""
    return str(Path.home() / "Documents" / "PasteListSync")


class _SettingsModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
    )


class LocalFileSyncConfig(_SettingsModel):
    """Settings for syncing through a shared folder."""

    sync_type: SyncType = Field(default=SyncType.LOCAL_FILE, exclude=True)
    sync_folder_path: str = Field(default_factory=default_sync_folder)
    sync_interval_minutes: int = Field(default=5, ge=1, le=60)
    auto_sync_on_clipboard_change: bool = True
    enable_conflict_resolution: bool = True
    conflict_strategy: ConflictStrategy = ConflictStrategy.KEEP_NEWER
    max_backup_files: int = Field(default=5, ge=1, le=20)
    last_auto_sync_time: datetime | None = None

    @property
    def snapshot_path(self) -> Path:
        """Path of the snapshot file inside the sync folder."""
        return Path(self.sync_folder_path) / SNAPSHOT_FILE_NAME


class ServerSyncConfig(_SettingsModel):
    """Settings for syncing against the remote authority."""

    sync_type: SyncType = Field(default=SyncType.SERVER, exclude=True)
    server_url: str = ""
    device_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    sync_direction: SyncDirection = SyncDirection.BIDIRECTIONAL
    sync_interval_minutes: int = Field(default=5, ge=1, le=60)
    auto_sync_on_clipboard_change: bool = True
    enable_conflict_resolution: bool = True
    conflict_strategy: ConflictStrategy = ConflictStrategy.KEEP_NEWER
    connection_timeout_seconds: int = Field(default=30, ge=5, le=120)
    max_retry_attempts: int = Field(default=3, ge=0, le=10)
    access_token: str | None = None
    last_auto_sync_time: datetime | None = None
    last_sync_time: datetime | None = None

    @property
    def api_base_url(self) -> str:
        """Base URL of the remote API."""
        return self.server_url.rstrip("/") + API_PREFIX

    def check(self) -> None:
        """Validate fields that pydantic constraints cannot express.

        Raises:
            SyncConfigurationError: If the server URL or device id is unusable.
        """
        if not self.server_url.strip():
            raise SyncConfigurationError("Server URL is not configured")
        parsed = urlparse(self.server_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise SyncConfigurationError(
                "Server URL must start with http:// or https://"
            )
        if not self.device_id.strip():
            raise SyncConfigurationError("Device id is not configured")


SyncSettings = Union[LocalFileSyncConfig, ServerSyncConfig]

SETTINGS_TYPES: dict[SyncType, type[_SettingsModel]] = {
    SyncType.LOCAL_FILE: LocalFileSyncConfig,
    SyncType.SERVER: ServerSyncConfig,
}


@dataclass
class SyncConfiguration:
    """The persisted sync configuration row.

    Attributes:
        sync_type: Raw sync type discriminant (see SyncType).
        is_enabled: Whether synchronization is switched on.
        config_data: Serialized settings payload for sync_type.
        last_sync_time: Watermark of the last successful sync (UTC).
        id: Store-assigned row id.
        created_at: Row creation time (UTC).
        updated_at: Last save time (UTC).
    """

    sync_type: str = SyncType.LOCAL_FILE.value
    is_enabled: bool = False
    config_data: str | None = None
    last_sync_time: datetime | None = None
    id: int | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


def resolve_sync_type(configuration: SyncConfiguration) -> SyncType:
    """Map the raw discriminant to a SyncType.

    Raises:
        UnsupportedSyncTypeError: If the engine has no handler for it.
    """
    try:
        return SyncType(configuration.sync_type)
    except ValueError:
        raise UnsupportedSyncTypeError(configuration.sync_type) from None


def decode_sync_settings(configuration: SyncConfiguration) -> SyncSettings:
    """Decode config_data into the settings variant for its sync type.

    An empty or undecodable payload yields the variant's defaults.

    Raises:
        UnsupportedSyncTypeError: If sync_type is not LocalFile or Server.
    """
    sync_type = resolve_sync_type(configuration)
    settings_type = SETTINGS_TYPES[sync_type]
    if not configuration.config_data:
        return settings_type()
    try:
        return settings_type.model_validate_json(configuration.config_data)
    except ValidationError as e:
        logger.error("Failed to decode %s settings: %s", sync_type.value, e)
        return settings_type()


def encode_sync_settings(
    configuration: SyncConfiguration, settings: SyncSettings
) -> None:
    """Store settings into configuration, updating its discriminant."""
    configuration.sync_type = settings.sync_type.value
    configuration.config_data = settings.model_dump_json(by_alias=True)


def update_sync_settings(
    configuration: SyncConfiguration,
    sync_type: SyncType | None = None,
    is_enabled: bool | None = None,
    **changes: Any,
) -> SyncSettings:
    """Apply setting changes to configuration in place.

    Switching sync_type starts from the new variant's defaults. Each change
    is validated on assignment.

    Args:
        configuration: Configuration row to update.
        sync_type: New sync type, or None to keep the current one.
        is_enabled: New enabled flag, or None to keep it.
        **changes: Settings field names and their new values.

    Returns:
        The updated settings variant.

    Raises:
        ValueError: If a field does not exist for the variant or a value
            is out of range.
    """
    if sync_type is not None and sync_type.value != configuration.sync_type:
        configuration.sync_type = sync_type.value
        configuration.config_data = None
        configuration.last_sync_time = None
    settings = decode_sync_settings(configuration)
    for name, value in changes.items():
        if name not in type(settings).model_fields or name == "sync_type":
            raise ValueError(
                f"{name} is not a {settings.sync_type.value} setting"
            )
        setattr(settings, name, value)
    encode_sync_settings(configuration, settings)
    if is_enabled is not None:
        configuration.is_enabled = is_enabled
    return settings
