#!/usr/bin/env python3
"""In-memory clipboard store of the bundled remote authority.

Items are kept per user and deduplicated by exact content: uploading
content the user already has returns the existing item's id. Each item
remembers every device that contributed it (its author plus any device
that later uploaded identical content), and a device never receives back
items it contributed.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from pastelist.models import MAX_CONTENT_LENGTH, ClipboardRecord, utcnow
from pastelist.wire import LocalItem, SyncRequest, SyncResponseData, UploadResult

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class StoredItem:
    """A clipboard item held by the authority.

    Attributes:
        id: Server-assigned id, unique across users.
        content: The clipboard text.
        device_id: Device that first uploaded the content.
        created_at: Creation time reported by the author (UTC).
        updated_at: Time the server stored the item (UTC).
        contributors: Every device that uploaded this content.
    """

    id: int
    content: str
    device_id: str
    created_at: datetime
    updated_at: datetime
    contributors: set[str] = field(default_factory=set)

    def to_record(self) -> ClipboardRecord:
        return ClipboardRecord(
            id=self.id,
            content=self.content,
            device_id=self.device_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


def check_content(content: str) -> str | None:
    """Return a problem description for invalid content, else None."""
    if not content:
        return "Content must not be empty"
    if len(content) > MAX_CONTENT_LENGTH:
        return f"Content must not exceed {MAX_CONTENT_LENGTH} characters"
    return None


class ServerStore:
    """Per-user clipboard items for the sync exchange."""

    def __init__(self) -> None:
        self._items: dict[str, list[StoredItem]] = {}
        self._ids = itertools.count(1)

    def items_for(self, user_id: str) -> list[StoredItem]:
        return self._items.setdefault(user_id, [])

    def find_by_content(self, user_id: str, content: str) -> StoredItem | None:
        for item in self.items_for(user_id):
            if item.content == content:
                return item
        return None

    def upload(self, user_id: str, device_id: str, local: LocalItem) -> UploadResult:
        """Store one uploaded item, or attach device_id to its existing twin."""
        problem = check_content(local.content)
        if problem is not None:
            return UploadResult(local_id=local.local_id, success=False, error=problem)

        existing = self.find_by_content(user_id, local.content)
        if existing is not None:
            existing.contributors.add(device_id)
            logger.debug("Content already stored as item %d", existing.id)
            return UploadResult(local_id=local.local_id, server_id=existing.id, success=True)

        now = utcnow()
        item = StoredItem(
            id=next(self._ids),
            content=local.content,
            device_id=device_id,
            created_at=local.created_at or now,
            updated_at=now,
            contributors={device_id},
        )
        self.items_for(user_id).append(item)
        return UploadResult(local_id=local.local_id, server_id=item.id, success=True)

    def changes_since(
        self, user_id: str, device_id: str, since: datetime | None
    ) -> list[ClipboardRecord]:
        """Return items created after since that device_id did not contribute.

        Results are ordered newest first.
        """
        threshold = since or EPOCH
        items = [
            item
            for item in self.items_for(user_id)
            if item.created_at > threshold and device_id not in item.contributors
        ]
        items.sort(key=lambda item: item.created_at, reverse=True)
        return [item.to_record() for item in items]

    def sync(self, user_id: str, request: SyncRequest) -> SyncResponseData:
        """Run the combined exchange: upload, then collect remote changes."""
        uploaded = [
            self.upload(user_id, request.device_id, local)
            for local in request.local_items
        ]
        remote_items = self.changes_since(
            user_id, request.device_id, request.last_sync_time
        )
        logger.info(
            "Sync for user %s device %s: %d uploaded, %d remote",
            user_id,
            request.device_id,
            sum(1 for result in uploaded if result.success),
            len(remote_items),
        )
        return SyncResponseData(
            sync_time=utcnow(), uploaded=uploaded, remote_items=remote_items
        )
