#!/usr/bin/env python3
"""CLI handling for pastelist.

This module provides the command-line interface, handling argument parsing
via click, logging configuration, and dispatching to the selected mode.
Exactly one mode must be given.

Usage:
    pastelist --serve --token USER=TOKEN [--host HOST] [--port PORT]
    pastelist --watch [--db PATH]
    pastelist --sync [--db PATH]
    pastelist --export PATH | --import PATH [--strategy S] | --validate PATH
    pastelist --configure [--type T] [--enable|--disable] [setting options]
    pastelist --status
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click

from pastelist.errors import SyncError
from pastelist.main_logging import configure_logging
from pastelist.main_options import MutuallyExclusiveOption, parse_tokens
from pastelist.sync_config import ConflictStrategy, SyncDirection, SyncType

if TYPE_CHECKING:
    from pastelist.auto_sync import AutoSyncController
    from pastelist.orchestrator import SyncOrchestrator

MODES: tuple[str, ...] = (
    "serve",
    "watch",
    "sync",
    "export_path",
    "import_path",
    "validate_path",
    "configure",
    "status",
)

DEFAULT_DB: str = str(Path.home() / ".local" / "share" / "pastelist" / "pastelist.db")


def _others(mode: str) -> list[str]:
    return [other for other in MODES if other != mode]


def _choice(enum_type) -> click.Choice:
    return click.Choice([member.value for member in enum_type])


@click.command()
@click.option("--serve", is_flag=True, cls=MutuallyExclusiveOption,
              not_required_if=_others("serve"), help="Run the sync server")
@click.option("--watch", is_flag=True, cls=MutuallyExclusiveOption,
              not_required_if=_others("watch"),
              help="Record clipboard changes and sync automatically")
@click.option("--sync", is_flag=True, cls=MutuallyExclusiveOption,
              not_required_if=_others("sync"), help="Run one sync attempt now")
@click.option("--export", "export_path", type=click.Path(dir_okay=False),
              cls=MutuallyExclusiveOption, not_required_if=_others("export_path"),
              help="Export clipboard history to a snapshot file")
@click.option("--import", "import_path", type=click.Path(dir_okay=False),
              cls=MutuallyExclusiveOption, not_required_if=_others("import_path"),
              help="Merge a snapshot file into clipboard history")
@click.option("--validate", "validate_path", type=click.Path(dir_okay=False),
              cls=MutuallyExclusiveOption, not_required_if=_others("validate_path"),
              help="Check that a file is a valid snapshot")
@click.option("--configure", is_flag=True, cls=MutuallyExclusiveOption,
              not_required_if=_others("configure"),
              help="Change sync settings")
@click.option("--status", is_flag=True, cls=MutuallyExclusiveOption,
              not_required_if=_others("status"),
              help="Show the sync configuration")
@click.option("--db", type=click.Path(dir_okay=False), default=DEFAULT_DB,
              envvar="PASTELIST_DB", show_default=True, help="Clipboard database")
@click.option("--host", default="127.0.0.1", show_default=True,
              help="Server bind address")
@click.option("--port", type=int, default=3000, show_default=True,
              help="Server port")
@click.option("--token", "tokens", multiple=True, envvar="PASTELIST_TOKENS",
              metavar="USER=TOKEN", help="Accepted bearer token (repeatable)")
@click.option("--type", "sync_type", type=_choice(SyncType), help="Sync type")
@click.option("--enable/--disable", "enabled", default=None, help="Switch sync on or off")
@click.option("--folder", help="Shared sync folder (LocalFile)")
@click.option("--server-url", help="Server base URL (Server)")
@click.option("--access-token", help="Bearer token for the server (Server)")
@click.option("--direction", type=_choice(SyncDirection), help="Sync direction (Server)")
@click.option("--interval", type=int, help="Minutes between scheduled syncs")
@click.option("--max-backups", type=int, help="Snapshot backups to keep (LocalFile)")
@click.option("--strategy", type=_choice(ConflictStrategy),
              help="Conflict strategy for --configure and --import")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
def main(
    serve: bool,
    watch: bool,
    sync: bool,
    export_path: str | None,
    import_path: str | None,
    validate_path: str | None,
    configure: bool,
    status: bool,
    db: str,
    host: str,
    port: int,
    tokens: tuple[str, ...],
    sync_type: str | None,
    enabled: bool | None,
    folder: str | None,
    server_url: str | None,
    access_token: str | None,
    direction: str | None,
    interval: int | None,
    max_backups: int | None,
    strategy: str | None,
    verbose: bool,
) -> None:
    """Clipboard history with local-file and server synchronization."""
    selected = [serve, watch, sync, export_path, import_path, validate_path, configure, status]
    if not any(value for value in selected):
        raise click.UsageError(
            "One of --serve, --watch, --sync, --export, --import, --validate, "
            "--configure or --status must be specified"
        )
    changes = {
        "sync_folder_path": folder,
        "server_url": server_url,
        "access_token": access_token,
        "sync_direction": SyncDirection(direction) if direction else None,
        "sync_interval_minutes": interval,
        "max_backup_files": max_backups,
        "conflict_strategy": ConflictStrategy(strategy) if strategy else None,
    }
    changes = {name: value for name, value in changes.items() if value is not None}
    if not configure and (sync_type or enabled is not None or set(changes) - {"conflict_strategy"}):
        raise click.UsageError("Setting options require --configure")

    configure_logging(verbose)

    try:
        if serve:
            _run_server(tokens, host, port)
            return
        orchestrator, controller = _open_engine(db)
        if configure:
            _configure(orchestrator, sync_type, enabled, changes)
        elif status:
            _show_status(orchestrator)
        elif validate_path:
            _validate(orchestrator, validate_path)
        elif export_path:
            count = asyncio.run(orchestrator.export_to_file(export_path))
            click.echo(f"Exported {count} records to {export_path}")
        elif import_path:
            chosen = ConflictStrategy(strategy) if strategy else ConflictStrategy.KEEP_LOCAL
            count = asyncio.run(orchestrator.import_from_file(import_path, chosen))
            click.echo(f"Imported {count} records from {import_path}")
        elif sync:
            _sync_once(controller)
        else:
            _watch(orchestrator, controller)
    except (SyncError, ConnectionError, FileNotFoundError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def _run_server(tokens: tuple[str, ...], host: str, port: int) -> None:
    """Run the bundled sync server until interrupted."""
    from pastelist.server import run_server

    if not tokens:
        raise click.UsageError("--serve requires at least one --token USER=TOKEN")
    run_server(parse_tokens(tokens), host=host, port=port)


def _open_engine(db: str) -> tuple[SyncOrchestrator, AutoSyncController]:
    """Open the database and build the orchestrator and controller."""
    from pastelist.auto_sync import AutoSyncController
    from pastelist.config_store import SqlConfigurationStore
    from pastelist.database import create_database, sqlite_url
    from pastelist.item_store import SqlItemStore
    from pastelist.orchestrator import SyncOrchestrator

    Path(db).parent.mkdir(parents=True, exist_ok=True)
    session_factory = create_database(sqlite_url(db))
    orchestrator = SyncOrchestrator(
        SqlItemStore(session_factory), SqlConfigurationStore(session_factory)
    )
    return orchestrator, AutoSyncController(orchestrator)


def _configure(
    orchestrator: SyncOrchestrator,
    sync_type: str | None,
    enabled: bool | None,
    changes: dict[str, Any],
) -> None:
    """Apply setting changes and show the result."""
    from pastelist.sync_config import update_sync_settings

    configuration = orchestrator.config_store.get_current()
    try:
        update_sync_settings(
            configuration,
            SyncType(sync_type) if sync_type else None,
            enabled,
            **changes,
        )
    except ValueError as e:
        raise click.UsageError(str(e)) from e
    if not orchestrator.config_store.save(configuration):
        raise click.ClickException("Configuration was rejected")
    _show_status(orchestrator)


def _show_status(orchestrator: SyncOrchestrator) -> None:
    """Print the active configuration without secrets."""
    from pastelist.sync_config import decode_sync_settings

    configuration = orchestrator.config_store.get_current()
    settings = decode_sync_settings(configuration)
    last_sync = configuration.last_sync_time
    click.echo(f"Sync type: {configuration.sync_type}")
    click.echo(f"Enabled: {'yes' if configuration.is_enabled else 'no'}")
    click.echo(f"Last sync: {last_sync.isoformat() if last_sync else 'never'}")
    click.echo(f"Records: {orchestrator.item_store.count()}")
    shown = settings.model_dump(mode="json", exclude={"access_token"})
    for name, value in shown.items():
        click.echo(f"  {name}: {value}")


def _validate(orchestrator: SyncOrchestrator, path: str) -> None:
    if asyncio.run(orchestrator.validate_file(path)):
        click.echo(f"{path} is a valid snapshot")
        return
    click.echo(f"{path} is not a valid snapshot", err=True)
    sys.exit(1)


def _sync_once(controller: AutoSyncController) -> None:
    """Run one attempt through the controller and report its history."""
    controller.subscribe(lambda event: click.echo(event.message))
    succeeded = asyncio.run(controller.manual_sync())
    for entry in controller.orchestrator.history.recent():
        outcome = "ok" if entry.success else f"failed: {entry.error_message}"
        click.echo(
            f"{entry.operation_type.value} {entry.record_count} records "
            f"({entry.target}): {outcome}"
        )
    if not succeeded:
        sys.exit(1)


def _watch(orchestrator: SyncOrchestrator, controller: AutoSyncController) -> None:
    """Watch the clipboard until interrupted."""
    from pastelist.watch import run_watcher

    controller.subscribe(lambda event: click.echo(event.message, err=event.terminal))
    try:
        asyncio.run(run_watcher(orchestrator.item_store, controller))
    except KeyboardInterrupt:
        pass
