#!/usr/bin/env python3
"""JSON snapshot files of the clipboard item store.

A snapshot is a UTF-8 JSON array of ClipboardRecord objects with
lower-camel field names and no schema version. Any structurally valid
array is accepted on import; individual records that fail validation are
logged and skipped.

Exports are written atomically (temporary file in the same folder, then
os.replace) so a reader on another device never sees a half-written
snapshot. An empty store still produces a file containing [].
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from contextlib import suppress
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pastelist.errors import SnapshotFormatError
from pastelist.merge import MergeStats, ProgressCallback, merge_records
from pastelist.models import ClipboardRecord, parse_records
from pastelist.sync_config import ConflictStrategy

if TYPE_CHECKING:
    from pastelist.item_store import ItemStore

logger = logging.getLogger(__name__)


def _write_atomic(path: Path, text: str) -> None:
    """Write text to path via a temporary file and rename."""
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        with suppress(FileNotFoundError):
            os.unlink(tmp_name)
        raise


def serialize_records(records: list[ClipboardRecord]) -> str:
    """Render records as an indented JSON array."""
    return json.dumps([r.to_json() for r in records], ensure_ascii=False, indent=2)


async def export_items(store: ItemStore, path: str | os.PathLike[str]) -> int:
    """Write every stored record to a snapshot file.

    Args:
        store: The local item store.
        path: Destination snapshot path.

    Returns:
        Number of records exported.
    """
    path = Path(path)
    records = store.get_all(limit=None)
    if not records:
        logger.info("Item store is empty, writing empty snapshot")
    await asyncio.to_thread(_write_atomic, path, serialize_records(records))
    logger.info("Exported %d records to %s", len(records), path)
    return len(records)


def read_snapshot(path: str | os.PathLike[str]) -> list[Any]:
    """Read and parse a snapshot into a list of raw objects.

    Raises:
        FileNotFoundError: If the file does not exist.
        SnapshotFormatError: If the file is not a JSON array.
    """
    text = Path(path).read_text(encoding="utf-8")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise SnapshotFormatError(f"Snapshot is not valid JSON: {e}") from e
    if not isinstance(data, list):
        raise SnapshotFormatError("Snapshot must contain a JSON array")
    return data


async def import_items(
    store: ItemStore,
    path: str | os.PathLike[str],
    strategy: ConflictStrategy = ConflictStrategy.KEEP_LOCAL,
    progress: ProgressCallback | None = None,
) -> MergeStats:
    """Merge a snapshot file into the item store.

    Args:
        store: The local item store.
        path: Snapshot path.
        strategy: Conflict strategy for content collisions. The default
            only adds content not already present.
        progress: Optional callback receiving (processed, total).

    Returns:
        Merge counts; invalid records are counted as failed.

    Raises:
        FileNotFoundError: If the snapshot does not exist.
        SnapshotFormatError: If the snapshot is not a JSON array.
    """
    raw_items = await asyncio.to_thread(read_snapshot, path)
    records, invalid = parse_records(raw_items)
    if not raw_items:
        logger.info("Snapshot %s is empty", path)
    else:
        logger.info("Snapshot contains %d records, importing", len(raw_items))
    stats = await merge_records(store, records, strategy, progress)
    stats.failed += invalid
    logger.info("Imported %d new records from %s", stats.imported, path)
    return stats


def validate_format(path: str | os.PathLike[str]) -> bool:
    """Return True if path exists and holds a JSON array."""
    try:
        read_snapshot(path)
    except (OSError, UnicodeDecodeError, SnapshotFormatError):
        return False
    return True
