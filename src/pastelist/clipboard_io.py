#!/usr/bin/env python3
"""X11 clipboard reads.

This module reads the current CLIPBOARD content as UTF8_STRING from its
owner and turns it into text suitable for the item store. Reads are
bounded by CLIPBOARD_TIMEOUT so an unresponsive owner cannot hang the
watcher.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from Xlib import X

from pastelist.models import MAX_CONTENT_LENGTH
from pastelist.selection_utils import wait_for_event_type

if TYPE_CHECKING:
    from Xlib.display import Display
    from Xlib.protocol.rq import Event
    from Xlib.xobject.drawable import Window

logger = logging.getLogger(__name__)

# Timeout in seconds for clipboard read operations
CLIPBOARD_TIMEOUT: float = 2.0

# Property our window receives converted selections into
SELECTION_PROPERTY: str = "PASTELIST_SEL"


async def read_clipboard_content(
    display: Display,
    window: Window,
    selection_atom: int,
    deferred_events: list[Event],
) -> bytes | None:
    """Read clipboard content from the current selection owner.

    Args:
        display: The X11 display connection.
        window: The window to receive selection data.
        selection_atom: The selection atom to read.
        deferred_events: List collecting events seen while waiting.

    Returns:
        Content bytes, or None on failure, empty selection or timeout.
    """
    try:
        owner = display.get_selection_owner(selection_atom)
        if owner == X.NONE:
            logger.debug("No selection owner for atom %s", selection_atom)
            return None

        utf8_atom = display.intern_atom("UTF8_STRING")
        prop_atom = display.intern_atom(SELECTION_PROPERTY)
        window.convert_selection(selection_atom, utf8_atom, prop_atom, X.CurrentTime)
        display.flush()

        await asyncio.wait_for(
            asyncio.to_thread(
                wait_for_event_type, display, X.SelectionNotify, deferred_events
            ),
            timeout=CLIPBOARD_TIMEOUT,
        )
        return _read_selection_property(display, window, prop_atom)
    except asyncio.TimeoutError:
        logger.debug("Clipboard read timed out after %s seconds", CLIPBOARD_TIMEOUT)
        return None
    except Exception as e:
        logger.debug("Clipboard read failed: %s", e)
        return None


def _read_selection_property(
    display: Display, window: Window, prop_atom: int
) -> bytes | None:
    """Read and delete the selection property from window."""
    try:
        prop = window.get_full_property(prop_atom, X.AnyPropertyType)
        window.delete_property(prop_atom)
        display.flush()
    except Exception as e:
        logger.debug("Failed to read selection property: %s", e)
        return None

    if prop is None:
        logger.debug("Selection property was empty")
        return None
    data = prop.value
    if isinstance(data, str):
        return data.encode("utf-8")
    return bytes(data)


def decode_clipboard_text(data: bytes | None) -> str | None:
    """Decode clipboard bytes into storable text.

    Returns:
        The text, or None if it is empty, blank, or longer than
        MAX_CONTENT_LENGTH characters.
    """
    if not data:
        return None
    text = data.decode("utf-8", errors="replace")
    if not text.strip():
        return None
    if len(text) > MAX_CONTENT_LENGTH:
        logger.warning(
            "Clipboard content of %d characters exceeds %d, not recorded",
            len(text),
            MAX_CONTENT_LENGTH,
        )
        return None
    return text
