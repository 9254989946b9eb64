#!/usr/bin/env python3
"""Tests for X11 display helpers and clipboard event filtering.

Uses mocks for the X11 display to avoid requiring a real display.
"""

from unittest.mock import MagicMock, patch

import pytest

from Xlib import X

from pastelist.clipboard import create_hidden_window, get_display_fd, validate_display
from pastelist.clipboard_events import drain_pending_events, is_clipboard_change
from pastelist.selection_utils import wait_for_event_type

CLIPBOARD = 301
PRIMARY = 1


class SetSelectionOwnerNotify:
    """Stand-in named like the XFixes event class."""

    def __init__(self, selection: int, owner: object = None) -> None:
        self.type = 87
        self.selection = selection
        self.owner = owner


class TestValidateDisplay:
    """Tests for validate_display function."""

    def test_missing_display_env(self) -> None:
        """Raise ConnectionError when DISPLAY is not set."""
        with patch.dict("os.environ", {}, clear=True):
            with pytest.raises(ConnectionError, match="DISPLAY"):
                validate_display()

    def test_connection_failure(self) -> None:
        """Raise ConnectionError when the X11 connection fails."""
        with patch.dict("os.environ", {"DISPLAY": ":0"}), \
            patch("Xlib.display.Display") as mock_display:
            mock_display.side_effect = Exception("Connection refused")
            with pytest.raises(ConnectionError, match="Connection refused"):
                validate_display()

    def test_success_returns_display(self) -> None:
        with patch.dict("os.environ", {"DISPLAY": ":1"}), \
            patch("Xlib.display.Display") as mock_display:
            assert validate_display() is mock_display.return_value
            mock_display.assert_called_once_with(":1")


class TestDisplayHelpers:
    """Tests for get_display_fd and create_hidden_window."""

    def test_display_fd(self) -> None:
        display = MagicMock()
        display.fileno.return_value = 7
        assert get_display_fd(display) == 7

    def test_hidden_window_is_one_pixel(self) -> None:
        display = MagicMock()
        create_hidden_window(display)
        root = display.screen.return_value.root
        args, kwargs = root.create_window.call_args
        assert args[:4] == (0, 0, 1, 1)
        assert kwargs["event_mask"] == X.PropertyChangeMask


class TestIsClipboardChange:
    """Tests for is_clipboard_change filtering."""

    def test_foreign_owner_change(self) -> None:
        window = MagicMock()
        event = SetSelectionOwnerNotify(CLIPBOARD, owner=MagicMock())
        assert is_clipboard_change(event, CLIPBOARD, window)

    def test_own_window_is_ignored(self) -> None:
        window = MagicMock()
        event = SetSelectionOwnerNotify(CLIPBOARD, owner=window)
        assert not is_clipboard_change(event, CLIPBOARD, window)

    def test_other_selection_is_ignored(self) -> None:
        event = SetSelectionOwnerNotify(PRIMARY, owner=MagicMock())
        assert not is_clipboard_change(event, CLIPBOARD, MagicMock())

    def test_other_event_type_is_ignored(self) -> None:
        event = MagicMock()
        event.selection = CLIPBOARD
        assert not is_clipboard_change(event, CLIPBOARD, MagicMock())


class TestDrainPendingEvents:
    """Tests for drain_pending_events."""

    def test_deferred_events_come_first(self) -> None:
        display = MagicMock()
        deferred = [SetSelectionOwnerNotify(CLIPBOARD)]
        queued = SetSelectionOwnerNotify(CLIPBOARD)
        display.pending_events.side_effect = [1, 0]
        display.next_event.return_value = queued

        events = drain_pending_events(display, deferred)

        assert events[1] is queued
        assert len(events) == 2
        assert deferred == []

    def test_never_reads_without_pending(self) -> None:
        display = MagicMock()
        display.pending_events.return_value = 0
        assert drain_pending_events(display, []) == []
        display.next_event.assert_not_called()


class TestWaitForEventType:
    """Tests for wait_for_event_type function."""

    def test_returns_matching_event_immediately(self) -> None:
        """Return immediately when first event matches target type."""
        display = MagicMock()
        target = MagicMock()
        target.type = X.SelectionNotify
        display.next_event.return_value = target

        deferred: list = []
        assert wait_for_event_type(display, X.SelectionNotify, deferred) is target
        assert deferred == []

    def test_defers_owner_change_events(self) -> None:
        """Keep owner-change events that arrive before the target."""
        display = MagicMock()
        owner_change = SetSelectionOwnerNotify(CLIPBOARD)
        target = MagicMock()
        target.type = X.SelectionNotify
        display.next_event.side_effect = [owner_change, target]

        deferred: list = []
        assert wait_for_event_type(display, X.SelectionNotify, deferred) is target
        assert deferred == [owner_change]

    def test_drops_unrelated_events(self) -> None:
        display = MagicMock()
        other = MagicMock()
        other.type = X.PropertyNotify
        target = MagicMock()
        target.type = X.SelectionNotify
        display.next_event.side_effect = [other, target]

        deferred: list = []
        wait_for_event_type(display, X.SelectionNotify, deferred)
        assert deferred == []
