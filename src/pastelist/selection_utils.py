#!/usr/bin/env python3
"""X11 selection utility functions.

Shared helper for waiting on a specific event type while keeping the
events that arrive meanwhile for the watcher to process afterwards.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from Xlib.display import Display
    from Xlib.protocol.rq import Event


def wait_for_event_type(
    display: Display,
    target_event_type: int,
    deferred_events: list[Event],
) -> Event:
    """Block until the display delivers an event of target_event_type.

    SetSelectionOwnerNotify events read while waiting are appended to
    deferred_events; anything else is dropped. Only call this when the
    target event is expected (after convert_selection).

    Args:
        display: The X11 display connection.
        target_event_type: The X11 event type to wait for.
        deferred_events: List collecting owner-change events seen meanwhile.

    Returns:
        The matching event.
    """
    while True:
        event = display.next_event()
        if event.type == target_event_type:
            return event
        if type(event).__name__ == "SetSelectionOwnerNotify":
            deferred_events.append(event)
