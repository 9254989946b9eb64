#!/usr/bin/env python3
"""Tests for AutoSyncController scheduling and back-off.

The orchestrator is real (in-memory stores, LocalFile sync into a
temporary folder) except where a test replaces run_configured to control
timing or failures.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from conftest import make_configuration, make_record
from pastelist.auto_sync import MAX_CONSECUTIVE_ERRORS, AutoSyncController
from pastelist.auto_sync_state import StatusChangedEvent
from pastelist.config_store import MemoryConfigurationStore
from pastelist.item_store import MemoryItemStore
from pastelist.models import OperationType
from pastelist.orchestrator import SyncOrchestrator, SyncOutcome


def _controller(config_store) -> tuple[AutoSyncController, list[StatusChangedEvent]]:
    orchestrator = SyncOrchestrator(MemoryItemStore([make_record("a")]), config_store)
    controller = AutoSyncController(orchestrator)
    events: list[StatusChangedEvent] = []
    controller.subscribe(events.append)
    return controller, events


def _outcome(count: int = 1) -> SyncOutcome:
    return SyncOutcome(OperationType.EXPORT, count, "snapshot.json")


class TestLifecycle:
    """Tests for start, stop and close."""

    @pytest.mark.asyncio
    async def test_start_arms_timer(self, local_config_store) -> None:
        controller, events = _controller(local_config_store)
        assert controller.start()
        status = controller.status()
        assert status.is_running
        assert status.next_sync_time is not None
        assert events[-1].message == "Auto sync started"

        controller.stop()
        assert not controller.status().is_running
        assert controller.status().next_sync_time is None
        assert events[-1].message == "Auto sync stopped"

    @pytest.mark.asyncio
    async def test_start_stays_stopped_when_disabled(self, local_settings) -> None:
        config_store = MemoryConfigurationStore(make_configuration(local_settings, enabled=False))
        controller, events = _controller(config_store)
        assert not controller.start()
        assert not controller.status().is_running
        assert events == []

    @pytest.mark.asyncio
    async def test_start_failure_is_reported(self, local_config_store, monkeypatch) -> None:
        controller, events = _controller(local_config_store)
        def locked():
            raise OSError("db locked")

        monkeypatch.setattr(local_config_store, "get_current", locked)
        assert not controller.start()
        assert events[-1].message == "Start failed: db locked"

    @pytest.mark.asyncio
    async def test_timer_runs_scheduled_sync(self, local_config_store) -> None:
        controller, _ = _controller(local_config_store)
        reasons: list[str] = []

        async def fake_perform(reason: str) -> bool:
            reasons.append(reason)
            return True

        controller._perform_sync = fake_perform
        task = asyncio.create_task(controller._run_timer(0.01))
        await asyncio.sleep(0.05)
        task.cancel()
        assert reasons and reasons[0] == "Scheduled sync"

    @pytest.mark.asyncio
    async def test_close_cancels_pending_debounce(self, local_config_store, monkeypatch) -> None:
        monkeypatch.setattr("pastelist.auto_sync.DEBOUNCE_SECONDS", 10)
        controller, _ = _controller(local_config_store)
        controller.orchestrator.run_configured = AsyncMock(return_value=_outcome())
        controller.notify_clipboard_changed()
        await asyncio.sleep(0)
        controller.close()
        await asyncio.sleep(0)
        controller.orchestrator.run_configured.assert_not_called()
        assert not await controller.manual_sync()


class TestAttempts:
    """Tests for manual, debounced and single-flight attempts."""

    @pytest.mark.asyncio
    async def test_manual_sync_success(self, local_config_store, local_settings) -> None:
        controller, events = _controller(local_config_store)
        assert await controller.manual_sync()
        assert events[-1].message == "Manual sync completed (1 records)"
        assert not events[-1].is_syncing
        assert any(event.is_syncing for event in events)
        assert controller.status().last_sync_time is not None
        assert local_settings.snapshot_path.exists()

    @pytest.mark.asyncio
    async def test_disabled_configuration_never_syncs(self, local_settings) -> None:
        config_store = MemoryConfigurationStore(make_configuration(local_settings, enabled=False))
        controller, events = _controller(config_store)
        assert not await controller.manual_sync()
        assert not await controller.on_clipboard_changed()
        assert events == [StatusChangedEvent("Sync is disabled", False)]
        assert controller.status().error_count == 0
        assert len(controller.orchestrator.history) == 0

    @pytest.mark.asyncio
    async def test_concurrent_triggers_run_once(self, local_config_store) -> None:
        controller, _ = _controller(local_config_store)
        release = asyncio.Event()
        calls = 0

        async def slow_run(reason: str) -> SyncOutcome:
            nonlocal calls
            calls += 1
            await release.wait()
            return _outcome()

        controller.orchestrator.run_configured = slow_run
        tasks = [asyncio.create_task(controller.manual_sync()) for _ in range(5)]
        await asyncio.sleep(0.01)
        assert controller.status().is_syncing
        release.set()
        results = await asyncio.gather(*tasks)

        assert calls == 1
        assert sorted(results) == [False, False, False, False, True]
        assert not controller.status().is_syncing

    @pytest.mark.asyncio
    async def test_debounce_collapses_burst(self, local_config_store, monkeypatch) -> None:
        monkeypatch.setattr("pastelist.auto_sync.DEBOUNCE_SECONDS", 0.05)
        controller, _ = _controller(local_config_store)
        controller.orchestrator.run_configured = AsyncMock(return_value=_outcome())

        first = asyncio.create_task(controller.on_clipboard_changed())
        await asyncio.sleep(0.02)
        second = asyncio.create_task(controller.on_clipboard_changed())
        await asyncio.sleep(0.02)
        last = asyncio.create_task(controller.on_clipboard_changed())

        assert await asyncio.gather(first, second, last) == [False, False, True]
        controller.orchestrator.run_configured.assert_awaited_once_with("Clipboard change sync")

    @pytest.mark.asyncio
    async def test_change_trigger_respects_opt_out(self, local_settings, monkeypatch) -> None:
        monkeypatch.setattr("pastelist.auto_sync.DEBOUNCE_SECONDS", 0)
        settings = local_settings.model_copy(update={"auto_sync_on_clipboard_change": False})
        controller, _ = _controller(MemoryConfigurationStore(make_configuration(settings)))
        controller.orchestrator.run_configured = AsyncMock(return_value=_outcome())
        assert not await controller.on_clipboard_changed()
        controller.orchestrator.run_configured.assert_not_called()


class TestBackOff:
    """Tests for error counting and the fatal stop."""

    @pytest.mark.asyncio
    async def test_stops_after_consecutive_failures(self, local_config_store) -> None:
        controller, events = _controller(local_config_store)
        controller.orchestrator.run_configured = AsyncMock(side_effect=OSError("disk full"))
        controller.start()

        for _ in range(MAX_CONSECUTIVE_ERRORS):
            assert not await controller.manual_sync()

        status = controller.status()
        assert status.error_count == MAX_CONSECUTIVE_ERRORS
        assert status.last_error == "disk full"
        assert not status.is_running
        assert controller._timer is None
        assert events[-1] == StatusChangedEvent(
            "Auto sync stopped after repeated errors", False, terminal=True
        )
        assert [e.message for e in events].count("Sync failed: disk full") == 3

        assert controller.start()
        assert controller.status().error_count == 0
        controller.stop()

    @pytest.mark.asyncio
    async def test_degraded_controller_ignores_clipboard_changes(
        self, local_config_store, monkeypatch
    ) -> None:
        monkeypatch.setattr("pastelist.auto_sync.DEBOUNCE_SECONDS", 0)
        controller, events = _controller(local_config_store)
        run = AsyncMock(side_effect=OSError("disk full"))
        controller.orchestrator.run_configured = run
        controller.start()
        for _ in range(MAX_CONSECUTIVE_ERRORS):
            await controller.manual_sync()
        calls_before = run.await_count

        assert controller.status().is_degraded
        assert not await controller.on_clipboard_changed()
        controller.notify_clipboard_changed()
        await asyncio.sleep(0)
        assert run.await_count == calls_before
        assert controller._pending == set()

        # Manual attempts still run but do not repeat the terminal notice
        assert not await controller.manual_sync()
        assert run.await_count == calls_before + 1
        assert sum(event.terminal for event in events) == 1

        assert controller.start()
        assert not controller.status().is_degraded
        controller.stop()

    @pytest.mark.asyncio
    async def test_success_resets_error_count(self, local_config_store) -> None:
        controller, events = _controller(local_config_store)
        controller.orchestrator.run_configured = AsyncMock(
            side_effect=[OSError("a"), OSError("b"), _outcome(4)]
        )
        await controller.manual_sync()
        await controller.manual_sync()
        assert controller.status().error_count == 2
        assert await controller.manual_sync("Retry")
        assert controller.status().error_count == 0
        assert controller.status().last_error is None
        assert events[-1].message == "Retry completed (4 records)"
        assert not any(event.terminal for event in events)

    @pytest.mark.asyncio
    async def test_configuration_errors_do_not_count(self, local_config_store) -> None:
        controller, events = _controller(local_config_store)
        configuration = local_config_store.get_current()
        configuration.sync_type = "Cloud"
        local_config_store._current = configuration

        for _ in range(MAX_CONSECUTIVE_ERRORS + 1):
            assert not await controller.manual_sync()

        assert controller.status().error_count == 0
        assert events[-1].message == "Unsupported sync type: Cloud"
        assert not any(event.terminal for event in events)


class TestObservers:
    """Tests for subscribe and unsubscribe."""

    @pytest.mark.asyncio
    async def test_failing_observer_does_not_break_controller(self, local_config_store) -> None:
        controller, events = _controller(local_config_store)

        def broken(event: StatusChangedEvent) -> None:
            raise RuntimeError("observer bug")

        controller.subscribe(broken)
        assert await controller.manual_sync()
        assert events[-1].message.endswith("completed (1 records)")

    @pytest.mark.asyncio
    async def test_unsubscribe(self, local_config_store) -> None:
        controller, _ = _controller(local_config_store)
        received: list[StatusChangedEvent] = []
        unsubscribe = controller.subscribe(received.append)
        unsubscribe()
        unsubscribe()
        controller.start()
        controller.stop()
        assert received == []

    def test_status_is_a_snapshot(self, local_config_store) -> None:
        controller, _ = _controller(local_config_store)
        status = controller.status()
        status.error_count = 99
        assert controller.status().error_count == 0
