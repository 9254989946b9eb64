#!/usr/bin/env python3
"""Clipboard watcher mode.

Watches the X11 CLIPBOARD selection, records every new text in the item
store, and tells the auto-sync controller about each change so it can run
a debounced sync. The periodic timer is armed for the lifetime of the
watcher.

Usage:
    pastelist --watch [--db PATH]
"""

from __future__ import annotations

import asyncio
import logging
import socket
from typing import TYPE_CHECKING

from pastelist.clipboard import create_hidden_window, get_display_fd, validate_display
from pastelist.clipboard_events import (
    drain_pending_events,
    is_clipboard_change,
    register_xfixes_events,
)
from pastelist.clipboard_io import decode_clipboard_text, read_clipboard_content
from pastelist.errors import SyncConfigurationError
from pastelist.models import ClipboardRecord
from pastelist.sync_config import ServerSyncConfig, decode_sync_settings

if TYPE_CHECKING:
    from Xlib.display import Display
    from Xlib.protocol.rq import Event
    from Xlib.xobject.drawable import Window

    from pastelist.auto_sync import AutoSyncController
    from pastelist.item_store import ItemStore

logger = logging.getLogger(__name__)


def resolve_device_id(controller: AutoSyncController) -> str:
    """Device id stamped on captured records.

    The configured server device id when server sync is selected,
    otherwise the host name.
    """
    try:
        configuration = controller.orchestrator.config_store.get_current()
        settings = decode_sync_settings(configuration)
    except SyncConfigurationError:
        return socket.gethostname()
    if isinstance(settings, ServerSyncConfig):
        return settings.device_id
    return socket.gethostname()


class ClipboardWatcher:
    """Feeds clipboard changes into the item store and the controller."""

    def __init__(
        self,
        display: Display,
        window: Window,
        clipboard_atom: int,
        item_store: ItemStore,
        controller: AutoSyncController,
        device_id: str,
    ) -> None:
        self.display = display
        self.window = window
        self.clipboard_atom = clipboard_atom
        self.item_store = item_store
        self.controller = controller
        self.device_id = device_id
        self.deferred_events: list[Event] = []
        self.x11_event = asyncio.Event()

    async def capture(self) -> bool:
        """Read the clipboard and store it.

        Returns:
            True if a new record was added and the controller notified.
        """
        data = await read_clipboard_content(
            self.display, self.window, self.clipboard_atom, self.deferred_events
        )
        if self.deferred_events:
            self.x11_event.set()
        text = decode_clipboard_text(data)
        if text is None:
            return False
        record = ClipboardRecord(content=text, device_id=self.device_id)
        if self.item_store.add_item(record) is None:
            logger.debug("Clipboard content already in history")
            return False
        logger.info("Recorded clipboard change (%d characters)", len(text))
        self.controller.notify_clipboard_changed()
        return True

    async def process_events(self) -> int:
        """Handle every pending event; return the number of changes captured."""
        captured = 0
        for event in drain_pending_events(self.display, self.deferred_events):
            if is_clipboard_change(event, self.clipboard_atom, self.window):
                if await self.capture():
                    captured += 1
        return captured

    async def run(self) -> None:
        """Process X11 events until cancelled."""
        loop = asyncio.get_running_loop()
        display_fd = get_display_fd(self.display)
        loop.add_reader(display_fd, self.x11_event.set)
        try:
            while True:
                await self.x11_event.wait()
                self.x11_event.clear()
                await self.process_events()
        finally:
            loop.remove_reader(display_fd)


async def run_watcher(item_store: ItemStore, controller: AutoSyncController) -> None:
    """Watch the clipboard until interrupted.

    Raises:
        ConnectionError: If no X11 display is available.
    """
    display = validate_display()
    window = create_hidden_window(display)
    clipboard_atom = register_xfixes_events(display, window)
    watcher = ClipboardWatcher(
        display,
        window,
        clipboard_atom,
        item_store,
        controller,
        resolve_device_id(controller),
    )
    if not controller.start():
        logger.warning("Auto sync is not active; only recording clipboard history")
    try:
        await watcher.run()
    finally:
        controller.close()
        display.close()
