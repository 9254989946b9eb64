#!/usr/bin/env python3
"""Persistence of the active sync configuration.

The installation has one logical configuration: the most recently
created row. get_current() creates a disabled LocalFile row on first use;
save() updates that row in place (or inserts it when none exists).
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import TYPE_CHECKING, Protocol

from pydantic import ValidationError
from sqlalchemy import select

from pastelist.database import SyncConfigurationEntity
from pastelist.models import as_utc, utcnow
from pastelist.sync_config import SETTINGS_TYPES, SyncConfiguration, SyncType

if TYPE_CHECKING:
    from sqlalchemy.orm import sessionmaker

logger = logging.getLogger(__name__)


class ConfigurationStore(Protocol):
    """Operations the sync engine needs from the configuration store."""

    def get_current(self) -> SyncConfiguration:
        """Return the active configuration, creating a default if needed."""
        ...

    def save(self, configuration: SyncConfiguration) -> bool:
        """Persist configuration; return False if it was rejected."""
        ...


def validate_configuration(configuration: SyncConfiguration) -> str | None:
    """Check a configuration before saving.

    Returns:
        None if valid, otherwise a description of the problem.
    """
    if not configuration.sync_type:
        return "Sync type must not be empty"
    try:
        sync_type = SyncType(configuration.sync_type)
    except ValueError:
        return f"Unsupported sync type: {configuration.sync_type}"
    if configuration.config_data:
        try:
            SETTINGS_TYPES[sync_type].model_validate_json(configuration.config_data)
        except ValidationError as e:
            return f"Invalid {sync_type.value} settings: {e.error_count()} error(s)"
    return None


class MemoryConfigurationStore:
    """In-memory ConfigurationStore holding a single row."""

    def __init__(self, configuration: SyncConfiguration | None = None) -> None:
        self._current = configuration
        if self._current is not None and self._current.id is None:
            self._current.id = 1

    def get_current(self) -> SyncConfiguration:
        if self._current is None:
            logger.info("No sync configuration found, creating default")
            self._current = SyncConfiguration(id=1)
        return replace(self._current)

    def save(self, configuration: SyncConfiguration) -> bool:
        problem = validate_configuration(configuration)
        if problem is not None:
            logger.error("Configuration rejected: %s", problem)
            return False
        configuration.updated_at = utcnow()
        if configuration.id is None:
            configuration.id = 1
        self._current = replace(configuration)
        return True


def _to_configuration(entity: SyncConfigurationEntity) -> SyncConfiguration:
    return SyncConfiguration(
        id=entity.id,
        sync_type=entity.sync_type,
        is_enabled=entity.is_enabled,
        config_data=entity.config_data,
        last_sync_time=(
            as_utc(entity.last_sync_time) if entity.last_sync_time else None
        ),
        created_at=as_utc(entity.created_at),
        updated_at=as_utc(entity.updated_at),
    )


def _naive(value: datetime | None) -> datetime | None:
    return as_utc(value).replace(tzinfo=None) if value is not None else None


class SqlConfigurationStore:
    """ConfigurationStore backed by the sync_configurations table."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def _latest(self, session) -> SyncConfigurationEntity | None:
        return session.scalar(
            select(SyncConfigurationEntity)
            .order_by(SyncConfigurationEntity.id.desc())
            .limit(1)
        )

    def get_current(self) -> SyncConfiguration:
        with self._session_factory() as session:
            entity = self._latest(session)
            if entity is None:
                logger.info("No sync configuration found, creating default")
                now = _naive(utcnow())
                entity = SyncConfigurationEntity(
                    sync_type=SyncType.LOCAL_FILE.value,
                    is_enabled=False,
                    created_at=now,
                    updated_at=now,
                )
                session.add(entity)
                session.commit()
            logger.debug(
                "Loaded sync configuration: enabled=%s, type=%s",
                entity.is_enabled,
                entity.sync_type,
            )
            return _to_configuration(entity)

    def save(self, configuration: SyncConfiguration) -> bool:
        problem = validate_configuration(configuration)
        if problem is not None:
            logger.error("Configuration rejected: %s", problem)
            return False
        now = utcnow()
        with self._session_factory() as session:
            entity = self._latest(session)
            if entity is None:
                entity = SyncConfigurationEntity(created_at=_naive(now))
                session.add(entity)
            entity.sync_type = configuration.sync_type
            entity.is_enabled = configuration.is_enabled
            entity.config_data = configuration.config_data
            entity.last_sync_time = _naive(configuration.last_sync_time)
            entity.updated_at = _naive(now)
            session.commit()
            configuration.id = entity.id
            configuration.updated_at = now
        logger.info("Sync configuration saved")
        return True
