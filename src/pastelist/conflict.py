#!/usr/bin/env python3
"""Conflict strategies for merging incoming records into the local store.

A conflict is an incoming record whose content already exists locally
with different metadata (device id or creation time). Each strategy is a
resolver function chosen from a table keyed by ConflictStrategy:

- KeepNewer:  the record with the later createdAt wins
- KeepBoth:   content, device and createdAt together form the identity,
              so a differing incoming record is stored as a distinct row
- KeepLocal:  incoming metadata is discarded
- KeepRemote: incoming metadata replaces the local row

Records with no local content match are always added.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable

from pastelist.sync_config import ConflictStrategy

if TYPE_CHECKING:
    from pastelist.item_store import ItemStore
    from pastelist.models import ClipboardRecord

logger = logging.getLogger(__name__)


class MergeAction(Enum):
    """What to do with one incoming record."""

    ADD = "add"
    ADD_DISTINCT = "add_distinct"
    REPLACE = "replace"
    SKIP = "skip"


@dataclass(frozen=True)
class Resolution:
    """Resolver decision for one incoming record.

    Attributes:
        action: The merge action to apply.
        existing: The local record involved in the collision, if any.
    """

    action: MergeAction
    existing: ClipboardRecord | None = None


Resolver = Callable[["ItemStore", "ClipboardRecord"], Resolution]


def _keep_newer(store: ItemStore, incoming: ClipboardRecord) -> Resolution:
    existing = store.find_duplicate_by_content(incoming.content)
    if existing is None:
        return Resolution(MergeAction.ADD)
    if existing.same_metadata(incoming) or incoming.created_at <= existing.created_at:
        return Resolution(MergeAction.SKIP, existing)
    return Resolution(MergeAction.REPLACE, existing)


def _keep_both(store: ItemStore, incoming: ClipboardRecord) -> Resolution:
    twin = store.find_matching(incoming.content, incoming.device_id, incoming.created_at)
    if twin is not None:
        return Resolution(MergeAction.SKIP, twin)
    existing = store.find_duplicate_by_content(incoming.content)
    if existing is None:
        return Resolution(MergeAction.ADD)
    return Resolution(MergeAction.ADD_DISTINCT, existing)


def _keep_local(store: ItemStore, incoming: ClipboardRecord) -> Resolution:
    existing = store.find_duplicate_by_content(incoming.content)
    if existing is None:
        return Resolution(MergeAction.ADD)
    return Resolution(MergeAction.SKIP, existing)


def _keep_remote(store: ItemStore, incoming: ClipboardRecord) -> Resolution:
    existing = store.find_duplicate_by_content(incoming.content)
    if existing is None:
        return Resolution(MergeAction.ADD)
    if existing.same_metadata(incoming):
        return Resolution(MergeAction.SKIP, existing)
    return Resolution(MergeAction.REPLACE, existing)


RESOLVERS: dict[ConflictStrategy, Resolver] = {
    ConflictStrategy.KEEP_NEWER: _keep_newer,
    ConflictStrategy.KEEP_BOTH: _keep_both,
    ConflictStrategy.KEEP_LOCAL: _keep_local,
    ConflictStrategy.KEEP_REMOTE: _keep_remote,
}


def resolve(
    strategy: ConflictStrategy, store: ItemStore, incoming: ClipboardRecord
) -> Resolution:
    """Decide how incoming should be merged under strategy."""
    return RESOLVERS[strategy](store, incoming)


def apply_resolution(
    store: ItemStore, incoming: ClipboardRecord, resolution: Resolution
) -> MergeAction:
    """Carry out a resolution against the store.

    Returns:
        The action actually applied. An ADD that the store rejects as a
        duplicate is reported as SKIP.
    """
    record = incoming.model_copy(update={"id": None})
    action = resolution.action
    if action is MergeAction.SKIP:
        logger.debug("Skipping duplicate record: %.50s", incoming.content)
        return action
    if action is MergeAction.ADD:
        if store.add_item(record) is None:
            return MergeAction.SKIP
        return action
    if action is MergeAction.ADD_DISTINCT:
        store.add_item(record, dedupe=False)
        return action
    # REPLACE: the old row goes only once the replacement is stored
    store.add_item(record, dedupe=False)
    existing = resolution.existing
    if existing is not None and existing.id is not None:
        store.delete_item(existing.id)
    logger.debug("Replaced local record with incoming metadata: %.50s", incoming.content)
    return action
