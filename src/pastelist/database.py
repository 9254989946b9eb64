#!/usr/bin/env python3
"""SQLAlchemy persistence for clipboard items and sync configuration.

Two tables back the local stores:
- clipboard_items: one row per clipboard record
- sync_configurations: sync configuration rows (newest row is current)

Timestamps are stored as naive UTC and converted back to aware UTC by the
stores when rows are read.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, Text, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker


class Base(DeclarativeBase):
    """Declarative base shared by all pastelist tables."""


class ClipboardItemEntity(Base):
    """A stored clipboard record."""

    __tablename__ = "clipboard_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    content: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    device_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class SyncConfigurationEntity(Base):
    """A stored sync configuration row."""

    __tablename__ = "sync_configurations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sync_type: Mapped[str] = mapped_column(String(50), nullable=False)
    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    config_data: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_sync_time: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


def create_database(database_url: str) -> sessionmaker:
    """Create the engine, ensure tables exist, and return a session factory.

    Args:
        database_url: SQLAlchemy URL, e.g. "sqlite:///pastelist.db".

    Returns:
        A sessionmaker bound to the new engine.
    """
    engine: Engine = create_engine(database_url)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)


def sqlite_url(path: str) -> str:
    """Build a SQLite URL for a database file path."""
    return f"sqlite:///{path}"
