#!/usr/bin/env python3
"""Automatic synchronization scheduling.

AutoSyncController decides when a sync attempt runs. Three triggers feed
it: a periodic timer armed by start(), debounced clipboard changes, and
manual requests. All of them end in _perform_sync(), which admits one
attempt at a time; a trigger that arrives while an attempt is running is
dropped rather than queued.

Configuration problems (sync disabled, unsupported type, missing folder)
are reported as status messages and never count as failures. Any other
failure increments the error counter; after MAX_CONSECUTIVE_ERRORS
failures in a row the controller stops itself, sends a terminal
notification and turns degraded: clipboard-change triggers are ignored
and only start() arms it again. Manual attempts are still allowed.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import timedelta
from typing import TYPE_CHECKING, Callable

from pastelist.auto_sync_state import AutoSyncStatus, StatusChangedEvent
from pastelist.errors import SyncConfigurationError
from pastelist.models import utcnow
from pastelist.sync_config import decode_sync_settings

if TYPE_CHECKING:
    from pastelist.orchestrator import SyncOrchestrator, SyncOutcome
    from pastelist.sync_config import SyncSettings

logger = logging.getLogger(__name__)

DEBOUNCE_SECONDS = 3.0
MAX_CONSECUTIVE_ERRORS = 3

StatusObserver = Callable[[StatusChangedEvent], None]


class AutoSyncController:
    """Schedules sync attempts and tracks their outcomes."""

    def __init__(self, orchestrator: SyncOrchestrator) -> None:
        self.orchestrator = orchestrator
        self._state = AutoSyncStatus()
        self._lock = threading.Lock()
        self._observers: list[StatusObserver] = []
        self._timer: asyncio.Task | None = None
        self._interval: timedelta | None = None
        self._pending: set[asyncio.Task] = set()
        self._change_stamp = 0
        self._closed = False

    # Observers

    def subscribe(self, observer: StatusObserver) -> Callable[[], None]:
        """Register observer for status events.

        Returns:
            A callable that removes the observer again.
        """
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _emit(self, message: str, terminal: bool = False) -> None:
        with self._lock:
            is_syncing = self._state.is_syncing
        event = StatusChangedEvent(message, is_syncing, terminal)
        for observer in list(self._observers):
            try:
                observer(event)
            except Exception:
                logger.exception("Status observer failed")

    def status(self) -> AutoSyncStatus:
        """Return a snapshot of the controller state."""
        with self._lock:
            return self._state.snapshot()

    # Lifecycle

    def _is_degraded(self) -> bool:
        with self._lock:
            return self._state.is_degraded

    def _read_settings(self) -> SyncSettings | None:
        configuration = self.orchestrator.config_store.get_current()
        if not configuration.is_enabled:
            return None
        return decode_sync_settings(configuration)

    def start(self) -> bool:
        """Arm the periodic timer if the configuration allows it.

        Must be called from a running event loop. Restarting an armed
        controller re-reads the interval. Starting resets the error count.

        Returns:
            True if the timer was armed.
        """
        if self._closed:
            return False
        try:
            settings = self._read_settings()
        except SyncConfigurationError as e:
            logger.info("Auto sync not started: %s", e)
            return False
        except Exception as e:
            logger.error("Failed to start auto sync: %s", e, exc_info=True)
            self._emit(f"Start failed: {e}")
            return False
        if settings is None:
            logger.debug("Sync is disabled, auto sync not started")
            return False

        self._cancel_timer()
        interval = timedelta(minutes=settings.sync_interval_minutes)
        self._interval = interval
        with self._lock:
            self._state.is_running = True
            self._state.error_count = 0
            self._state.last_error = None
            self._state.is_degraded = False
            self._state.next_sync_time = utcnow() + interval
        self._timer = asyncio.get_running_loop().create_task(
            self._run_timer(interval.total_seconds())
        )
        logger.info(
            "Auto sync started (%s, every %d minutes)",
            settings.sync_type.value,
            settings.sync_interval_minutes,
        )
        self._emit("Auto sync started")
        return True

    def stop(self) -> None:
        """Cancel the periodic timer."""
        self._cancel_timer()
        with self._lock:
            self._state.is_running = False
            self._state.next_sync_time = None
        logger.info("Auto sync stopped")
        self._emit("Auto sync stopped")

    def close(self) -> None:
        """Stop the controller for good and cancel pending debounce waits."""
        self._closed = True
        if self._state.is_running:
            self.stop()
        for task in list(self._pending):
            task.cancel()
        self._pending.clear()

    def _cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    async def _run_timer(self, period: float) -> None:
        while True:
            await asyncio.sleep(period)
            await self._perform_sync("Scheduled sync")

    # Triggers

    async def on_clipboard_changed(self) -> bool:
        """Sync after a quiet window if no newer change arrives meanwhile.

        Returns:
            True if an attempt ran and succeeded.
        """
        if self._closed:
            return False
        if self._is_degraded():
            logger.debug("Auto sync is degraded, ignoring clipboard change")
            return False
        try:
            settings = self._read_settings()
        except Exception as e:
            logger.error("Failed to read sync configuration: %s", e)
            return False
        if settings is None or not settings.auto_sync_on_clipboard_change:
            return False

        self._change_stamp += 1
        stamp = self._change_stamp
        await asyncio.sleep(DEBOUNCE_SECONDS)
        if stamp != self._change_stamp:
            logger.debug("Clipboard changed again during quiet window, deferring")
            return False
        if self._is_degraded():
            return False
        return await self._perform_sync("Clipboard change sync")

    def notify_clipboard_changed(self) -> None:
        """Schedule on_clipboard_changed() as a background task."""
        if self._closed or self._is_degraded():
            return
        task = asyncio.get_running_loop().create_task(self.on_clipboard_changed())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def manual_sync(self, reason: str = "Manual sync") -> bool:
        """Run an attempt now, unless one is already running."""
        return await self._perform_sync(reason)

    # Attempt

    def _try_begin(self) -> bool:
        with self._lock:
            if self._state.is_syncing:
                return False
            self._state.is_syncing = True
            return True

    async def _perform_sync(self, reason: str) -> bool:
        """Run one attempt through the single-flight guard.

        Args:
            reason: Label used in status messages.

        Returns:
            True if the attempt ran and succeeded.
        """
        if self._closed:
            return False
        try:
            self.orchestrator.load_settings()
        except SyncConfigurationError as e:
            logger.info("%s skipped: %s", reason, e)
            self._emit(str(e))
            return False

        if not self._try_begin():
            logger.debug("Sync already in progress, dropping %s", reason)
            return False
        self._emit(f"{reason} started")

        error: Exception | None = None
        outcome: SyncOutcome | None = None
        try:
            outcome = await self.orchestrator.run_configured(reason)
        except Exception as e:
            error = e
        finally:
            with self._lock:
                self._state.is_syncing = False

        if isinstance(error, SyncConfigurationError):
            logger.info("%s skipped: %s", reason, error)
            self._emit(str(error))
            return False
        if error is not None:
            self._on_failure(reason, error)
            return False
        self._on_success(reason, outcome)
        return True

    def _on_success(self, reason: str, outcome: SyncOutcome) -> None:
        now = utcnow()
        with self._lock:
            self._state.error_count = 0
            self._state.last_error = None
            self._state.last_sync_time = now
            if self._state.is_running and self._interval is not None:
                self._state.next_sync_time = now + self._interval
        logger.info("%s completed (%d records)", reason, outcome.record_count)
        self._emit(f"{reason} completed ({outcome.record_count} records)")

    def _on_failure(self, reason: str, error: Exception) -> None:
        with self._lock:
            self._state.error_count += 1
            self._state.last_error = str(error)
            error_count = self._state.error_count
            exhausted = (
                error_count >= MAX_CONSECUTIVE_ERRORS and not self._state.is_degraded
            )
            if exhausted:
                self._state.is_degraded = True
        logger.error(
            "%s failed (%d consecutive): %s", reason, error_count, error, exc_info=error
        )
        self._emit(f"Sync failed: {error}")
        if exhausted:
            logger.error("Stopping auto sync after %d consecutive errors", error_count)
            self.stop()
            self._emit("Auto sync stopped after repeated errors", terminal=True)
