#!/usr/bin/env python3
"""Timestamped backups of the snapshot file.

Before a snapshot is overwritten it is copied beside itself as
<stem>_backup_<yyyyMMdd_HHmmss>.json. Only the newest max_backups copies
are kept; "newest" is decided by filename-descending sort, which matches
chronological order for this pattern. Cleanup is best effort: a backup
that cannot be deleted is logged and left behind.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)

# strftime pattern of the backup timestamp (yyyyMMdd_HHmmss).
BACKUP_TIME_FORMAT: str = "%Y%m%d_%H%M%S"


def backup_path(snapshot: Path, now: datetime | None = None) -> Path:
    """Return the backup path for snapshot at the given local time."""
    stamp = (now or datetime.now()).strftime(BACKUP_TIME_FORMAT)
    return snapshot.with_name(f"{snapshot.stem}_backup_{stamp}.json")


def list_backups(snapshot: Path) -> list[Path]:
    """Return existing backups of snapshot, newest first."""
    pattern = f"{snapshot.stem}_backup_*.json"
    return sorted(snapshot.parent.glob(pattern), key=lambda p: p.name, reverse=True)


def create_backup(snapshot: Path, now: datetime | None = None) -> Path | None:
    """Copy snapshot to a timestamped backup if it exists.

    Returns:
        The backup path, or None if there was no snapshot to back up.
    """
    if not snapshot.exists():
        return None
    target = backup_path(snapshot, now)
    shutil.copy2(snapshot, target)
    logger.debug("Created backup file: %s", target)
    return target


async def cleanup_backups(snapshot: Path, max_backups: int) -> list[Path]:
    """Delete all but the newest max_backups backups.

    Returns:
        Paths that were deleted.
    """
    deleted: list[Path] = []
    for stale in list_backups(snapshot)[max_backups:]:
        try:
            stale.unlink()
        except OSError as e:
            logger.error("Failed to delete backup %s: %s", stale, e)
        else:
            deleted.append(stale)
            logger.debug("Deleted old backup: %s", stale)
        await asyncio.sleep(0)
    return deleted


async def backup_and_rotate(
    snapshot: Path, max_backups: int, now: datetime | None = None
) -> Path | None:
    """Back up snapshot, then prune old backups.

    A failure to create the backup is logged and does not raise, so the
    export that follows still runs.

    Returns:
        The new backup path, or None if none was made.
    """
    try:
        created = await asyncio.to_thread(create_backup, snapshot, now)
    except OSError as e:
        logger.error("Failed to create backup of %s: %s", snapshot, e)
        return None
    if created is not None:
        await cleanup_backups(snapshot, max_backups)
    return created
