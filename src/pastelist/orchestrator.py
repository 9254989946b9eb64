#!/usr/bin/env python3
"""Drives individual sync operations end to end.

Every operation the orchestrator runs (Export, Import, Push, Pull,
Bidirectional, Validate) appends exactly one SyncHistoryEntry, whether it
succeeds or fails. Failures are recorded and then re-raised to the
caller; the orchestrator itself never retries (the transport does its own
retries for transient HTTP failures).

run_configured() is the single attempt the auto-sync controller makes: it
reads the active configuration, rejects unusable configurations before
any I/O, runs the local-file or server cycle, and saves the watermark
only when the cycle succeeded.
"""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Iterator

from pastelist.backup_rotation import backup_and_rotate
from pastelist.errors import MissingSyncFolderError, SyncDisabledError
from pastelist.local_file_codec import export_items, import_items, validate_format
from pastelist.merge import MergeStats, merge_records
from pastelist.models import OperationType, SyncHistoryEntry, utcnow
from pastelist.sync_config import (
    ConflictStrategy,
    LocalFileSyncConfig,
    ServerSyncConfig,
    SyncConfiguration,
    SyncDirection,
    decode_sync_settings,
    encode_sync_settings,
)
from pastelist.sync_history import SyncHistory
from pastelist.transport import RemoteSyncClient

if TYPE_CHECKING:
    import httpx

    from pastelist.config_store import ConfigurationStore
    from pastelist.item_store import ItemStore
    from pastelist.sync_config import SyncSettings
    from pastelist.wire import SyncResponseData

logger = logging.getLogger(__name__)

ProgressListener = Callable[[OperationType, int, int], None]


@dataclass
class SyncResult:
    """Counts from a server exchange.

    Attributes:
        pushed_count: Local records the server accepted.
        pulled_count: Remote records that changed the local store.
        conflicts_resolved: Collisions settled in favor of remote records.
        sync_time: Server-reported time of the exchange.
    """

    pushed_count: int = 0
    pulled_count: int = 0
    conflicts_resolved: int = 0
    sync_time: datetime | None = None

    @property
    def total_records(self) -> int:
        return self.pushed_count + self.pulled_count


@dataclass
class SyncOutcome:
    """Result of one configured sync attempt.

    Attributes:
        operation: The operation recorded for the attempt.
        record_count: Records moved by the attempt.
        target: Snapshot path or server URL.
        watermark: Time to save as the configuration watermark; the
            modification time of the snapshot written by a local-file
            cycle. None means the time the attempt finished.
    """

    operation: OperationType
    record_count: int
    target: str
    watermark: datetime | None = None


def _file_mtime(path: Path) -> datetime | None:
    try:
        return datetime.fromtimestamp(path.stat().st_mtime, timezone.utc)
    except FileNotFoundError:
        return None


class SyncOrchestrator:
    """Runs sync operations against the item store and configuration."""

    def __init__(
        self,
        item_store: ItemStore,
        config_store: ConfigurationStore,
        history: SyncHistory | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        on_progress: ProgressListener | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            item_store: Local item store (single source of local truth).
            config_store: Store holding the active sync configuration.
            history: Shared history buffer; a new one is created if omitted.
            transport: Optional httpx transport for remote exchanges.
            on_progress: Optional listener for batch merge progress.
        """
        self.item_store = item_store
        self.config_store = config_store
        self.history = history if history is not None else SyncHistory()
        self.transport = transport
        self.on_progress = on_progress

    def _record(
        self,
        operation: OperationType,
        target: str,
        count: int,
        success: bool = True,
        error: str | None = None,
        **extra: int,
    ) -> None:
        self.history.record(
            SyncHistoryEntry(
                operation_type=operation,
                record_count=count,
                success=success,
                target=target,
                error_message=error,
                **extra,
            )
        )

    @contextmanager
    def _recording_failure(self, operation: OperationType, target: str) -> Iterator[None]:
        """Record a failed history entry for any exception, then re-raise.

        Cancellation is recorded too, so an attempt interrupted by stop()
        still leaves its history entry.
        """
        try:
            yield
        except BaseException as e:
            message = str(e) or type(e).__name__
            logger.error("%s failed for %s: %s", operation.value, target, message)
            self._record(operation, target, 0, success=False, error=message)
            raise

    def _progress(self, operation: OperationType) -> Callable[[int, int], None] | None:
        if self.on_progress is None:
            return None
        listener = self.on_progress
        return lambda processed, total: listener(operation, processed, total)

    def _client(self, config: ServerSyncConfig) -> RemoteSyncClient:
        return RemoteSyncClient(config, transport=self.transport)

    # Local file operations

    async def export_to_file(self, path: str | os.PathLike[str]) -> int:
        """Export the whole item store to a snapshot file.

        Returns:
            Number of records exported.
        """
        target = str(path)
        with self._recording_failure(OperationType.EXPORT, target):
            count = await export_items(self.item_store, path)
        self._record(OperationType.EXPORT, target, count)
        return count

    async def import_from_file(
        self,
        path: str | os.PathLike[str],
        strategy: ConflictStrategy = ConflictStrategy.KEEP_LOCAL,
    ) -> int:
        """Merge a snapshot file into the item store.

        Returns:
            Number of records that changed the local store.

        Raises:
            FileNotFoundError: If the snapshot does not exist.
            SnapshotFormatError: If the snapshot is not a JSON array.
        """
        target = str(path)
        with self._recording_failure(OperationType.IMPORT, target):
            stats = await import_items(
                self.item_store, path, strategy, self._progress(OperationType.IMPORT)
            )
        self._record(
            OperationType.IMPORT,
            target,
            stats.imported,
            conflicts_resolved=stats.conflicts_resolved,
        )
        return stats.imported

    async def validate_file(self, path: str | os.PathLike[str]) -> bool:
        """Return True if path holds a JSON array snapshot."""
        return await asyncio.to_thread(validate_format, path)

    # Server operations

    def _remote_strategy(self, config: ServerSyncConfig) -> ConflictStrategy:
        if config.enable_conflict_resolution:
            return config.conflict_strategy
        return ConflictStrategy.KEEP_LOCAL

    async def _merge_remote(
        self, config: ServerSyncConfig, operation: OperationType, data: SyncResponseData
    ) -> MergeStats:
        records = data.remote_items
        if data.invalid_remote_items:
            logger.warning(
                "Server sent %d invalid records, skipped", data.invalid_remote_items
            )
        if not records:
            logger.info("Server returned no new records")
            return MergeStats(failed=data.invalid_remote_items)
        logger.info("Merging %d records from server", len(records))
        stats = await merge_records(
            self.item_store,
            records,
            self._remote_strategy(config),
            self._progress(operation),
        )
        stats.failed += data.invalid_remote_items
        return stats

    async def push(self, config: ServerSyncConfig, timeout: float | None = None) -> int:
        """Upload all local records to the server.

        Returns:
            Number of records the server accepted.

        Raises:
            RemoteSyncError: If the exchange failed.
        """
        target = config.server_url
        with self._recording_failure(OperationType.PUSH, target):
            config.check()
            local_items = self.item_store.get_all(limit=None)
            if not local_items:
                logger.info("Local history is empty, nothing to push")
                pushed = 0
            else:
                async with self._client(config) as client:
                    result = await client.exchange(
                        local_items, config.last_sync_time, timeout=timeout
                    )
                result.raise_for_outcome()
                pushed = result.pushed_count
        self._record(OperationType.PUSH, target, pushed, pushed_count=pushed)
        logger.info("Pushed %d records to %s", pushed, target)
        return pushed

    async def pull(self, config: ServerSyncConfig, timeout: float | None = None) -> int:
        """Fetch records other devices created since the watermark.

        Updates config.last_sync_time to the server's sync time.

        Returns:
            Number of remote records that changed the local store.

        Raises:
            RemoteSyncError: If the exchange failed.
        """
        target = config.server_url
        with self._recording_failure(OperationType.PULL, target):
            config.check()
            async with self._client(config) as client:
                result = await client.exchange([], config.last_sync_time, timeout=timeout)
            result.raise_for_outcome()
            stats = await self._merge_remote(
                config, OperationType.PULL, result.data
            )
            config.last_sync_time = result.data.sync_time
        self._record(
            OperationType.PULL,
            target,
            stats.imported,
            pulled_count=stats.imported,
            conflicts_resolved=stats.conflicts_resolved,
        )
        logger.info("Pulled %d records from %s", stats.imported, target)
        return stats.imported

    async def bidirectional(
        self, config: ServerSyncConfig, timeout: float | None = None
    ) -> SyncResult:
        """Upload local records and merge remote ones in a single exchange.

        Updates config.last_sync_time to the server's sync time.

        Raises:
            RemoteSyncError: If the exchange failed.
        """
        target = config.server_url
        with self._recording_failure(OperationType.BIDIRECTIONAL, target):
            config.check()
            local_items = self.item_store.get_all(limit=None)
            logger.debug("Local history has %d records", len(local_items))
            async with self._client(config) as client:
                result = await client.exchange(
                    local_items, config.last_sync_time, timeout=timeout
                )
            result.raise_for_outcome()
            stats = await self._merge_remote(
                config, OperationType.BIDIRECTIONAL, result.data
            )
            config.last_sync_time = result.data.sync_time
            sync = SyncResult(
                pushed_count=result.pushed_count,
                pulled_count=stats.imported,
                conflicts_resolved=stats.conflicts_resolved,
                sync_time=result.data.sync_time,
            )
        self._record(
            OperationType.BIDIRECTIONAL,
            target,
            sync.total_records,
            pushed_count=sync.pushed_count,
            pulled_count=sync.pulled_count,
            conflicts_resolved=sync.conflicts_resolved,
        )
        logger.info(
            "Bidirectional sync complete: pushed %d, pulled %d, resolved %d conflicts",
            sync.pushed_count,
            sync.pulled_count,
            sync.conflicts_resolved,
        )
        return sync

    async def validate_connection(
        self, config: ServerSyncConfig, timeout: float | None = None
    ) -> bool:
        """Check that the server is reachable and healthy."""
        target = config.server_url
        try:
            config.check()
            async with self._client(config) as client:
                result = await client.check_health(timeout=timeout)
        except Exception as e:
            logger.error("Connection check failed for %s: %s", target, e)
            self._record(OperationType.VALIDATE, target, 0, success=False, error=str(e))
            return False
        if result.success:
            logger.info("Server connection verified: %s", target)
            self._record(OperationType.VALIDATE, target, 1)
        else:
            logger.warning("Server connection check failed: %s", result.message)
            self._record(
                OperationType.VALIDATE, target, 0, success=False, error=result.message
            )
        return result.success

    # Configured attempt

    def load_settings(self) -> tuple[SyncConfiguration, SyncSettings]:
        """Read the active configuration and check that it can sync.

        Raises:
            SyncConfigurationError: If sync is disabled, of an unsupported
                type, or missing required settings.
        """
        configuration = self.config_store.get_current()
        if not configuration.is_enabled:
            raise SyncDisabledError("Sync is disabled")
        settings = decode_sync_settings(configuration)
        if isinstance(settings, LocalFileSyncConfig):
            if not settings.sync_folder_path.strip():
                raise MissingSyncFolderError("Sync folder path is not configured")
        else:
            settings.check()
        return configuration, settings

    async def run_configured(self, reason: str = "Sync") -> SyncOutcome:
        """Run one sync attempt for the active configuration.

        Raises:
            SyncConfigurationError: If sync is disabled, of an unsupported
                type, or missing required settings. Raised before any I/O.
            Exception: Any failure of the attempt itself, after it has
                been recorded in history.
        """
        configuration, settings = self.load_settings()
        logger.info("Starting %s (%s)", reason, settings.sync_type.value)
        if isinstance(settings, LocalFileSyncConfig):
            outcome = await self._run_local_file(configuration, settings)
        else:
            outcome = await self._run_server(settings)
        self._save_watermark(configuration, settings, outcome.watermark)
        return outcome

    def _save_watermark(
        self,
        configuration: SyncConfiguration,
        settings: SyncSettings,
        watermark: datetime | None = None,
    ) -> None:
        now = utcnow()
        settings.last_auto_sync_time = now
        if watermark is not None:
            configuration.last_sync_time = watermark
        elif isinstance(settings, ServerSyncConfig) and settings.last_sync_time:
            configuration.last_sync_time = settings.last_sync_time
        else:
            configuration.last_sync_time = now
        encode_sync_settings(configuration, settings)
        if not self.config_store.save(configuration):
            logger.error("Failed to save sync watermark")

    async def _run_local_file(
        self, configuration: SyncConfiguration, settings: LocalFileSyncConfig
    ) -> SyncOutcome:
        snapshot = settings.snapshot_path
        target = str(snapshot)
        with self._recording_failure(OperationType.EXPORT, target):
            await asyncio.to_thread(snapshot.parent.mkdir, parents=True, exist_ok=True)
            merged = await self._merge_newer_snapshot(
                snapshot, configuration.last_sync_time, self._local_strategy(settings)
            )
            await backup_and_rotate(snapshot, settings.max_backup_files)
            count = await export_items(self.item_store, snapshot)
            written = await asyncio.to_thread(_file_mtime, snapshot)
        self._record(OperationType.EXPORT, target, count, pulled_count=merged)
        return SyncOutcome(OperationType.EXPORT, count, target, written)

    def _local_strategy(self, settings: LocalFileSyncConfig) -> ConflictStrategy:
        if settings.enable_conflict_resolution:
            return settings.conflict_strategy
        return ConflictStrategy.KEEP_LOCAL

    async def _merge_newer_snapshot(
        self,
        snapshot: Path,
        watermark: datetime | None,
        strategy: ConflictStrategy,
    ) -> int:
        """Merge a snapshot another device wrote since the watermark."""
        modified = await asyncio.to_thread(_file_mtime, snapshot)
        if modified is None:
            return 0
        if watermark is not None and modified <= watermark:
            logger.debug("Snapshot unchanged since last sync, skipping merge")
            return 0
        logger.info("Snapshot %s changed since last sync, merging (%s)", snapshot, strategy.value)
        stats = await import_items(
            self.item_store, snapshot, strategy, self._progress(OperationType.IMPORT)
        )
        return stats.imported

    async def _run_server(self, settings: ServerSyncConfig) -> SyncOutcome:
        direction = settings.sync_direction
        if direction is SyncDirection.PUSH_ONLY:
            count = await self.push(settings)
            operation = OperationType.PUSH
        elif direction is SyncDirection.PULL_ONLY:
            count = await self.pull(settings)
            operation = OperationType.PULL
        else:
            count = (await self.bidirectional(settings)).total_records
            operation = OperationType.BIDIRECTIONAL
        return SyncOutcome(operation, count, settings.server_url)
