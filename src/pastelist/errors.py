#!/usr/bin/env python3
"""Exception types for pastelist synchronization.

Configuration errors abort an attempt before any I/O and never count
against the auto-sync error budget. Remote and snapshot errors are
attempt-level failures: they are recorded in sync history and counted.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pastelist.transport import TransportOutcome


class SyncError(Exception):
    """Base class for all synchronization errors."""


class SyncConfigurationError(SyncError):
    """Raised when the active configuration does not allow a sync attempt."""


class SyncDisabledError(SyncConfigurationError):
    """Raised when synchronization is switched off."""


class UnsupportedSyncTypeError(SyncConfigurationError):
    """Raised for a sync type the engine has no handler for."""

    def __init__(self, sync_type: str) -> None:
        super().__init__(f"Unsupported sync type: {sync_type}")
        self.sync_type = sync_type


class MissingSyncFolderError(SyncConfigurationError):
    """Raised when a local-file configuration has no folder path."""


class SnapshotFormatError(SyncError):
    """Raised when a snapshot file is not a JSON array of records."""


class RemoteSyncError(SyncError):
    """Raised when an exchange with the remote authority fails.

    Attributes:
        outcome: The transport outcome that caused the failure.
        status_code: HTTP status code, if a response was received.
    """

    def __init__(
        self,
        message: str,
        outcome: TransportOutcome,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.outcome = outcome
        self.status_code = status_code
