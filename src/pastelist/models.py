#!/usr/bin/env python3
"""Clipboard records and sync history entries.

ClipboardRecord is the unit exchanged with snapshot files and the remote
authority. Its JSON form uses lower-camel field names (deviceId,
createdAt, updatedAt); parsing accepts either spelling.

Identity for deduplication is exact content equality. Two records with
the same content are the same logical item regardless of origin device
or timestamps, except under the KeepBoth conflict strategy which also
compares deviceId and createdAt.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

# Maximum clipboard content length in characters, matching the server.
MAX_CONTENT_LENGTH: int = 10000


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ClipboardRecord(BaseModel):
    """A single clipboard history record.

    Attributes:
        id: Store-assigned ordinal, or None before the record is stored.
        content: The clipboard text.
        device_id: Identifier of the device that authored the record.
        created_at: When the content was first copied (UTC).
        updated_at: Last modification time (UTC).
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int | None = None
    content: str = Field(min_length=1, max_length=MAX_CONTENT_LENGTH)
    device_id: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("created_at", "updated_at")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return as_utc(value)

    def same_metadata(self, other: ClipboardRecord) -> bool:
        """Return True if device and creation time match other's."""
        return (
            self.device_id == other.device_id
            and self.created_at == other.created_at
        )

    def to_json(self) -> dict:
        """Return the lower-camel JSON form of this record."""
        return self.model_dump(mode="json", by_alias=True)


def parse_records(raw_items: list[Any]) -> tuple[list[ClipboardRecord], int]:
    """Validate raw records one at a time.

    Invalid entries are logged and left out, so one bad record never
    rejects the rest.

    Returns:
        Tuple of (valid records, number of invalid entries).
    """
    records: list[ClipboardRecord] = []
    invalid = 0
    for index, raw in enumerate(raw_items):
        try:
            records.append(ClipboardRecord.model_validate(raw))
        except ValidationError as e:
            invalid += 1
            logger.error("Skipping invalid record %d: %s", index, e)
    return records, invalid


class OperationType(str, Enum):
    """Kind of sync operation recorded in history."""

    EXPORT = "Export"
    IMPORT = "Import"
    PUSH = "Push"
    PULL = "Pull"
    BIDIRECTIONAL = "Bidirectional"
    VALIDATE = "Validate"


@dataclass
class SyncHistoryEntry:
    """One orchestrated sync attempt.

    Attributes:
        operation_type: Which operation ran.
        record_count: Records exported, imported, pushed or pulled.
        success: Whether the attempt succeeded.
        target: Snapshot file path or server URL.
        error_message: Failure description, if any.
        timestamp: When the attempt finished (UTC).
        pushed_count: Records uploaded, for remote operations.
        pulled_count: Records merged locally, for remote operations.
        conflicts_resolved: Content collisions replaced by a strategy.
    """

    operation_type: OperationType
    record_count: int
    success: bool
    target: str
    error_message: str | None = None
    timestamp: datetime = field(default_factory=utcnow)
    pushed_count: int | None = None
    pulled_count: int | None = None
    conflicts_resolved: int | None = None
