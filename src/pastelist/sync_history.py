#!/usr/bin/env python3
"""In-memory ring buffer of sync attempts.

History is deliberately ephemeral: it lives only for the process and is
empty on every cold start. Once HISTORY_CAPACITY entries are held, the
oldest entry is evicted for each new one.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime

from pastelist.models import SyncHistoryEntry, as_utc

logger = logging.getLogger(__name__)

# Maximum number of history entries retained.
HISTORY_CAPACITY: int = 100


@dataclass
class SyncHistory:
    """Bounded, append-only record of sync attempts.

    Attributes:
        entries: Entries in insertion order, oldest first.
    """

    entries: deque[SyncHistoryEntry] = field(
        default_factory=lambda: deque(maxlen=HISTORY_CAPACITY)
    )

    def record(self, entry: SyncHistoryEntry) -> None:
        """Append an entry, evicting the oldest when full."""
        self.entries.append(entry)
        logger.info(
            "Recorded sync history: %s, success=%s, records=%d",
            entry.operation_type.value,
            entry.success,
            entry.record_count,
        )

    def recent(self, count: int = 10) -> list[SyncHistoryEntry]:
        """Return up to count entries, newest first."""
        ordered = sorted(self.entries, key=lambda e: e.timestamp, reverse=True)
        return ordered[:count]

    def clean(self, before: datetime) -> int:
        """Remove entries older than before; return how many were removed."""
        before = as_utc(before)
        kept = [e for e in self.entries if e.timestamp >= before]
        removed = len(self.entries) - len(kept)
        self.entries.clear()
        self.entries.extend(kept)
        return removed

    def __len__(self) -> int:
        return len(self.entries)
