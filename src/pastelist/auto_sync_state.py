#!/usr/bin/env python3
"""Auto-sync controller state.

This module provides the AutoSyncStatus dataclass that the controller
mutates under its lock, and the StatusChangedEvent pushed to observers
whenever the controller's lifecycle or an attempt's outcome changes.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime


@dataclass
class AutoSyncStatus:
    """State of the auto-sync controller.

    Attributes:
        is_running: True while the periodic timer is armed.
        is_syncing: True while an attempt holds the single-flight guard.
        last_sync_time: Completion time of the last successful attempt.
        next_sync_time: When the timer will next fire, or None if stopped.
        error_count: Consecutive failed attempts since the last success.
        last_error: Message of the most recent failure.
        is_degraded: True after the error budget ran out; automatic
            attempts stay off until start() is called again.
    """

    is_running: bool = False
    is_syncing: bool = False
    last_sync_time: datetime | None = None
    next_sync_time: datetime | None = None
    error_count: int = 0
    last_error: str | None = None
    is_degraded: bool = False

    def snapshot(self) -> AutoSyncStatus:
        """Return a copy that later transitions do not affect."""
        return replace(self)


@dataclass(frozen=True)
class StatusChangedEvent:
    """Notification pushed to controller observers.

    Attributes:
        message: Human-readable status line.
        is_syncing: Whether an attempt is in progress.
        terminal: True when the controller stopped itself after repeated
            failures and will not sync again until restarted.
    """

    message: str
    is_syncing: bool
    terminal: bool = False
