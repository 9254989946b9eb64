#!/usr/bin/env python3
"""Wire contract of the combined clipboard sync exchange.

POST {server}/api/v1/clipboard/sync

Request:
    {deviceId, lastSyncTime?, localItems: [{localId?, content, createdAt?}]}

Success envelope:
    {success: true, data: {syncTime, uploaded: [...], remoteItems: [...]},
     message, timestamp}

Error envelope:
    {success: false, error: {code, message, details: []}, timestamp}

Both the client transport and the bundled server use these models, so the
two sides cannot drift apart.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from pastelist.models import ClipboardRecord, as_utc, parse_records, utcnow

# Path of the combined sync exchange, relative to the API base URL.
SYNC_PATH: str = "/clipboard/sync"

# Health check path, relative to the server root.
HEALTH_PATH: str = "/health"


class ErrorCode:
    """Error codes used in error envelopes."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    TOKEN_INVALID = "TOKEN_INVALID"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> dict[str, Any]:
        """Return the lower-camel JSON form, omitting unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class LocalItem(_WireModel):
    """A local record offered to the server."""

    local_id: Any = None
    content: str
    created_at: datetime | None = None

    @field_validator("created_at")
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value) if value is not None else None

    @classmethod
    def from_record(cls, record: ClipboardRecord) -> LocalItem:
        return cls(local_id=record.id, content=record.content, created_at=record.created_at)


class SyncRequest(_WireModel):
    """Body of the sync exchange."""

    device_id: str = ""
    last_sync_time: datetime | None = None
    local_items: list[LocalItem] = Field(default_factory=list)

    @field_validator("last_sync_time")
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value) if value is not None else None


class UploadResult(_WireModel):
    """Per-item outcome of an upload."""

    local_id: Any = None
    server_id: int | None = None
    success: bool
    error: str | None = None


class SyncResponseData(_WireModel):
    """Payload of a successful sync exchange.

    Remote items are validated one by one; invalid ones are dropped and
    counted in invalid_remote_items instead of failing the exchange.
    """

    sync_time: datetime
    uploaded: list[UploadResult] = Field(default_factory=list)
    remote_items: list[ClipboardRecord] = Field(default_factory=list)
    invalid_remote_items: int = Field(default=0, exclude=True)

    @model_validator(mode="before")
    @classmethod
    def _drop_invalid_remote_items(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        key = "remoteItems" if "remoteItems" in data else "remote_items"
        raw_items = data.get(key)
        if not isinstance(raw_items, list):
            return data
        records, invalid = parse_records(raw_items)
        return {**data, key: records, "invalid_remote_items": invalid}


class ApiErrorBody(_WireModel):
    """Error description inside an error envelope."""

    code: str
    message: str
    details: list[Any] = Field(default_factory=list)


class ApiEnvelope(_WireModel):
    """Response envelope shared by success and error responses."""

    success: bool
    data: Any = None
    message: str | None = None
    error: ApiErrorBody | None = None
    timestamp: datetime | None = None


def success_envelope(data: Any, message: str = "OK") -> dict[str, Any]:
    """Build a success envelope."""
    return {
        "success": True,
        "data": data,
        "message": message,
        "timestamp": utcnow().isoformat(),
    }


def error_envelope(code: str, message: str, details: list[Any] | None = None) -> dict[str, Any]:
    """Build an error envelope."""
    return {
        "success": False,
        "error": {"code": code, "message": message, "details": details or []},
        "timestamp": utcnow().isoformat(),
    }
