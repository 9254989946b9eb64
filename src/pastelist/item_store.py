#!/usr/bin/env python3
"""Local clipboard item store.

The sync engine treats the item store as the single source of local truth
and only ever asks it to add or delete records. Two implementations share
the ItemStore protocol:
- MemoryItemStore: process-local dictionary, used by tests and dry runs
- SqlItemStore: SQLAlchemy-backed store used by the CLI

add_item() deduplicates by exact content unless dedupe=False, in which
case the caller has already decided the record is distinct (KeepBoth).
"""

from __future__ import annotations

import itertools
from datetime import datetime
from typing import TYPE_CHECKING, Protocol

from sqlalchemy import func, select

from pastelist.database import ClipboardItemEntity
from pastelist.models import ClipboardRecord, as_utc

if TYPE_CHECKING:
    from sqlalchemy.orm import sessionmaker


class ItemStore(Protocol):
    """Operations the sync engine needs from the local item store."""

    def add_item(self, record: ClipboardRecord, *, dedupe: bool = True) -> int | None:
        """Store record; return its new id, or None if content is a duplicate."""
        ...

    def get_all(self, limit: int | None = None, offset: int = 0) -> list[ClipboardRecord]:
        """Return records newest first; limit=None means no limit."""
        ...

    def search(self, text: str, limit: int = 100, offset: int = 0) -> list[ClipboardRecord]:
        """Return records whose content contains text, newest first."""
        ...

    def find_duplicate_by_content(self, content: str) -> ClipboardRecord | None:
        """Return a record with exactly this content, if any."""
        ...

    def find_matching(
        self, content: str, device_id: str | None, created_at: datetime
    ) -> ClipboardRecord | None:
        """Return a record matching content, device and creation time."""
        ...

    def delete_item(self, item_id: int) -> bool:
        """Delete a record by id; return True if it existed."""
        ...

    def count(self) -> int:
        """Return the number of stored records."""
        ...


class MemoryItemStore:
    """In-memory ItemStore."""

    def __init__(self, records: list[ClipboardRecord] | None = None) -> None:
        self._items: dict[int, ClipboardRecord] = {}
        self._ids = itertools.count(1)
        for record in records or []:
            self.add_item(record)

    def add_item(self, record: ClipboardRecord, *, dedupe: bool = True) -> int | None:
        if dedupe and self.find_duplicate_by_content(record.content) is not None:
            return None
        item_id = next(self._ids)
        self._items[item_id] = record.model_copy(update={"id": item_id})
        return item_id

    def get_all(self, limit: int | None = None, offset: int = 0) -> list[ClipboardRecord]:
        records = [self._items[i] for i in sorted(self._items, reverse=True)]
        end = None if limit is None else offset + limit
        return records[offset:end]

    def search(self, text: str, limit: int = 100, offset: int = 0) -> list[ClipboardRecord]:
        if not text.strip():
            return []
        matches = [r for r in self.get_all() if text in r.content]
        return matches[offset:offset + limit]

    def find_duplicate_by_content(self, content: str) -> ClipboardRecord | None:
        for record in self._items.values():
            if record.content == content:
                return record
        return None

    def find_matching(
        self, content: str, device_id: str | None, created_at: datetime
    ) -> ClipboardRecord | None:
        created_at = as_utc(created_at)
        for record in self._items.values():
            if (
                record.content == content
                and record.device_id == device_id
                and record.created_at == created_at
            ):
                return record
        return None

    def delete_item(self, item_id: int) -> bool:
        return self._items.pop(item_id, None) is not None

    def count(self) -> int:
        return len(self._items)


def _to_naive_utc(value: datetime) -> datetime:
    return as_utc(value).replace(tzinfo=None)


def _to_record(entity: ClipboardItemEntity) -> ClipboardRecord:
    return ClipboardRecord(
        id=entity.id,
        content=entity.content,
        device_id=entity.device_id,
        created_at=as_utc(entity.created_at),
        updated_at=as_utc(entity.updated_at),
    )


class SqlItemStore:
    """ItemStore backed by the clipboard_items table."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def add_item(self, record: ClipboardRecord, *, dedupe: bool = True) -> int | None:
        with self._session_factory() as session:
            if dedupe:
                existing = session.scalar(
                    select(ClipboardItemEntity.id)
                    .where(ClipboardItemEntity.content == record.content)
                    .limit(1)
                )
                if existing is not None:
                    return None
            entity = ClipboardItemEntity(
                content=record.content,
                device_id=record.device_id,
                created_at=_to_naive_utc(record.created_at),
                updated_at=_to_naive_utc(record.updated_at),
            )
            session.add(entity)
            session.commit()
            return entity.id

    def get_all(self, limit: int | None = None, offset: int = 0) -> list[ClipboardRecord]:
        query = select(ClipboardItemEntity).order_by(ClipboardItemEntity.id.desc())
        if limit is not None:
            query = query.limit(limit)
        if offset:
            query = query.offset(offset)
        with self._session_factory() as session:
            return [_to_record(e) for e in session.scalars(query)]

    def search(self, text: str, limit: int = 100, offset: int = 0) -> list[ClipboardRecord]:
        if not text.strip():
            return []
        query = (
            select(ClipboardItemEntity)
            .where(ClipboardItemEntity.content.contains(text, autoescape=True))
            .order_by(ClipboardItemEntity.id.desc())
            .limit(limit)
            .offset(offset)
        )
        with self._session_factory() as session:
            return [_to_record(e) for e in session.scalars(query)]

    def find_duplicate_by_content(self, content: str) -> ClipboardRecord | None:
        query = (
            select(ClipboardItemEntity)
            .where(ClipboardItemEntity.content == content)
            .limit(1)
        )
        with self._session_factory() as session:
            entity = session.scalar(query)
            return _to_record(entity) if entity is not None else None

    def find_matching(
        self, content: str, device_id: str | None, created_at: datetime
    ) -> ClipboardRecord | None:
        query = (
            select(ClipboardItemEntity)
            .where(ClipboardItemEntity.content == content)
            .where(ClipboardItemEntity.device_id.is_(device_id)
                   if device_id is None
                   else ClipboardItemEntity.device_id == device_id)
            .where(ClipboardItemEntity.created_at == _to_naive_utc(created_at))
            .limit(1)
        )
        with self._session_factory() as session:
            entity = session.scalar(query)
            return _to_record(entity) if entity is not None else None

    def delete_item(self, item_id: int) -> bool:
        with self._session_factory() as session:
            entity = session.get(ClipboardItemEntity, item_id)
            if entity is None:
                return False
            session.delete(entity)
            session.commit()
            return True

    def count(self) -> int:
        with self._session_factory() as session:
            return session.scalar(select(func.count(ClipboardItemEntity.id))) or 0
