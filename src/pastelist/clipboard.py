#!/usr/bin/env python3
"""X11 clipboard access via the XFixes extension.

This module provides the display-level helpers the clipboard watcher
needs: validating X11 connectivity, exposing the display file descriptor
for asyncio, and creating the hidden window that receives selection data.
XFixes gives event-driven notification of clipboard ownership changes, so
the watcher never polls.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

from Xlib import X

if TYPE_CHECKING:
    from Xlib.display import Display
    from Xlib.xobject.drawable import Window


def validate_display() -> Display:
    """Validate X11 connectivity and return a Display object.

    Returns:
        Display object for X11 operations.

    Raises:
        ConnectionError: If DISPLAY is unset or the X11 connection fails.
    """
    display_name = os.environ.get("DISPLAY")
    if not display_name:
        raise ConnectionError(
            "DISPLAY environment variable is not set; "
            "an X11 display is required to watch the clipboard"
        )

    try:
        from Xlib.display import Display as XDisplay
        return XDisplay(display_name)
    except Exception as e:
        raise ConnectionError(f"Failed to connect to X11 display: {e}") from e


def get_display_fd(display: Display) -> int:
    """Get the file descriptor for the X11 display connection.

    The descriptor is registered with loop.add_reader() so X11 events wake
    the watcher without blocking the event loop.
    """
    return display.fileno()


def create_hidden_window(display: Display) -> Window:
    """Create a 1x1 unmapped window to receive converted selections.

    Args:
        display: The X11 display connection.

    Returns:
        The hidden Window.
    """
    screen = display.screen()
    return screen.root.create_window(
        0, 0, 1, 1, 0, screen.root_depth, event_mask=X.PropertyChangeMask,
    )
