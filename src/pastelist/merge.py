#!/usr/bin/env python3
"""Batched merge of incoming records into the local item store.

Used by snapshot import and by server pulls. Records are processed in
batches of MERGE_BATCH_SIZE with a short sleep between batches so a large
snapshot never holds the event loop for the whole file. A record that
fails to merge is logged and skipped; the batch carries on.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Iterable

from pastelist.conflict import MergeAction, apply_resolution, resolve

if TYPE_CHECKING:
    from pastelist.item_store import ItemStore
    from pastelist.models import ClipboardRecord
    from pastelist.sync_config import ConflictStrategy

logger = logging.getLogger(__name__)

# Number of records merged between yield points.
MERGE_BATCH_SIZE: int = 100

# Pause between batches in seconds, letting other tasks run.
MERGE_BATCH_DELAY: float = 0.01

ProgressCallback = Callable[[int, int], None]


@dataclass
class MergeStats:
    """Counts produced by one merge.

    Attributes:
        added: Records stored because no local content matched.
        replaced: Local rows replaced by incoming metadata.
        distinct: Records stored beside an existing content match (KeepBoth).
        skipped: Records already present or discarded by the strategy.
        failed: Records that raised while merging.
    """

    added: int = 0
    replaced: int = 0
    distinct: int = 0
    skipped: int = 0
    failed: int = 0

    @property
    def imported(self) -> int:
        """Records that changed the local store."""
        return self.added + self.replaced + self.distinct

    @property
    def conflicts_resolved(self) -> int:
        """Collisions settled in favor of the incoming record."""
        return self.replaced + self.distinct


_COUNTERS = {
    MergeAction.ADD: "added",
    MergeAction.ADD_DISTINCT: "distinct",
    MergeAction.REPLACE: "replaced",
    MergeAction.SKIP: "skipped",
}


def merge_one(
    store: ItemStore,
    record: ClipboardRecord,
    strategy: ConflictStrategy,
    stats: MergeStats,
) -> None:
    """Merge a single record, updating stats; never raises."""
    try:
        action = apply_resolution(store, record, resolve(strategy, store, record))
    except Exception as e:
        stats.failed += 1
        logger.error("Failed to merge record: %s", e, exc_info=True)
        return
    counter = _COUNTERS[action]
    setattr(stats, counter, getattr(stats, counter) + 1)


async def merge_records(
    store: ItemStore,
    records: Iterable[ClipboardRecord],
    strategy: ConflictStrategy,
    progress: ProgressCallback | None = None,
) -> MergeStats:
    """Merge records into store in batches.

    Args:
        store: The local item store.
        records: Incoming records.
        strategy: Conflict strategy for content collisions.
        progress: Optional callback receiving (processed, total).

    Returns:
        Merge counts.
    """
    # Oldest first, so the newest record ends up with the highest local id
    items = sorted(records, key=lambda record: record.created_at)
    total = len(items)
    stats = MergeStats()
    for start in range(0, total, MERGE_BATCH_SIZE):
        batch = items[start:start + MERGE_BATCH_SIZE]
        for record in batch:
            merge_one(store, record, strategy, stats)
        processed = start + len(batch)
        if progress is not None:
            progress(processed, total)
        await asyncio.sleep(MERGE_BATCH_DELAY)
    return stats
