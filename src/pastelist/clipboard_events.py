#!/usr/bin/env python3
"""X11 clipboard event handling.

This module registers for XFixes selection-owner notifications on the
CLIPBOARD selection and sorts the events the display delivers into the
ones that mean "the clipboard content changed".
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from Xlib.display import Display
    from Xlib.protocol.rq import Event
    from Xlib.xobject.drawable import Window


def register_xfixes_events(display: Display, window: Window) -> int:
    """Register for XFixes owner-change notifications on CLIPBOARD.

    Args:
        display: The X11 display connection.
        window: The window to receive selection events.

    Returns:
        The CLIPBOARD atom, cached for event filtering.
    """
    from Xlib.ext import xfixes

    xfixes.query_version(display)
    clipboard_atom = display.intern_atom("CLIPBOARD")
    mask = xfixes.XFixesSetSelectionOwnerNotifyMask
    xfixes.select_selection_input(display, window.id, clipboard_atom, mask)
    display.flush()
    return clipboard_atom


def is_clipboard_change(event: Event, clipboard_atom: int, window: Window) -> bool:
    """Return True if event reports a new CLIPBOARD owner other than us."""
    if type(event).__name__ != "SetSelectionOwnerNotify":
        return False
    if event.selection != clipboard_atom:
        return False
    return getattr(event, "owner", None) != window


def drain_pending_events(display: Display, deferred_events: list[Event]) -> list[Event]:
    """Collect deferred events plus everything the display has queued.

    Never blocks: only events already pending are read.
    """
    events = list(deferred_events)
    deferred_events.clear()
    while display.pending_events():
        events.append(display.next_event())
    return events
