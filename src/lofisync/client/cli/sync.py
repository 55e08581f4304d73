"""Sync commands for the lofisync CLI.

Commands:
- sync: Run sync cycles until idle, or keep syncing with --watch
- status: Show the sync cursor and pending local changes
- resync: Mark everything for upload again
"""

from __future__ import annotations

import logging
import sys
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import click

from lofisync.client.cli.config import get_database_path, get_settings_blob, load_config

if TYPE_CHECKING:
    from lofisync.client.api import HTTPClient
    from lofisync.client.state import LocalLogStore
    from lofisync.client.sync import SyncEngine
    from lofisync.core.config import ServerConfig


def setup_logging(verbose: bool) -> None:
    """Send lofisync logs to stderr."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    lofisync_logger = logging.getLogger("lofisync")
    for existing in lofisync_logger.handlers[:]:
        lofisync_logger.removeHandler(existing)
    lofisync_logger.addHandler(handler)
    lofisync_logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    lofisync_logger.propagate = False


def open_store() -> LocalLogStore:
    """Open the configured local log database."""
    from lofisync.client.state import LocalLogStore

    return LocalLogStore(get_database_path())


def get_server_config() -> ServerConfig:
    """Get the configured sync service connection.

    Exits with an error if the CLI is not configured.
    """
    from lofisync.core.config import ServerConfig

    config = load_config()
    if not config.get("server_url") or not config.get("token"):
        click.echo("Error: Not configured. Run 'lofisync init' first.", err=True)
        sys.exit(1)
    return ServerConfig(server_url=config["server_url"], token=config["token"])


def build_engine(store: LocalLogStore, client: HTTPClient) -> SyncEngine:
    """Create an engine wired to the local log and the sync service."""
    from lofisync.client.sync import SyncEngine
    from lofisync.core.config import SyncSettings

    config = load_config()
    settings = SyncSettings(consent_public=bool(config.get("consent_public", False)))
    return SyncEngine(store, client, settings, settings_provider=get_settings_blob)


def _format_millis(millis: int) -> str:
    if not millis:
        return "never"
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc).isoformat(timespec="seconds")


@click.command()
@click.option("--small", is_flag=True, help="Send only the most recent changes.")
@click.option("--watch", "-w", is_flag=True, help="Keep syncing in the background.")
@click.option("--timeout", default=300.0, show_default=True, help="Give up after this many seconds.")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logs.")
def sync(small: bool, watch: bool, timeout: float, verbose: bool) -> None:
    """Synchronize the local log with the sync service."""
    from lofisync.client.api import HTTPClient
    from lofisync.client.sync import LARGE, SMALL

    setup_logging(verbose)
    server_config = get_server_config()

    with open_store() as store, HTTPClient(server_config) as client:
        engine = build_engine(store, client)
        try:
            if watch:
                _watch(engine, SMALL if small else LARGE)
                return

            if small:
                engine.trigger(SMALL)
            else:
                engine.force()
            settled = engine.wait_idle(timeout=timeout, include_backoff=False)
            status = engine.status
        finally:
            engine.close()

    if not settled:
        click.echo("Error: Sync did not finish in time.", err=True)
        sys.exit(1)
    if status.last_error:
        click.echo(f"Error: {status.last_error}", err=True)
        sys.exit(1)

    click.echo(
        f"Sync finished: {status.dirty_qsos} qsos and "
        f"{status.dirty_operations} operations still pending."
    )


def _watch(engine: SyncEngine, mode: str) -> None:
    """Keep the engine and its watchdog running until Ctrl+C."""
    from lofisync.client.sync import SyncWatchdog

    watchdog = SyncWatchdog(engine)
    watchdog.start()
    engine.trigger(mode)
    click.echo("Syncing in background. Press Ctrl+C to stop.")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        click.echo("\nStopping...")
    finally:
        watchdog.stop()


@click.command()
def status() -> None:
    """Show sync cursor and pending local changes."""
    from lofisync.core.types import RecordKind

    store = open_store()
    try:
        cursor = store.load_cursor()
        click.echo(f"Database:           {get_database_path()}")
        click.echo(f"Pending QSOs:       {store.count_dirty(RecordKind.QSO)}")
        click.echo(f"Pending operations: {store.count_dirty(RecordKind.OPERATION)}")
        click.echo(f"Last QSO received:  {_format_millis(cursor.last_qso_synced_at_millis)}")
        click.echo(
            f"Last operation received: {_format_millis(cursor.last_operation_synced_at_millis)}"
        )
        click.echo(f"Full sync completed: {'yes' if cursor.completed_full_sync else 'no'}")
    finally:
        store.close()


@click.command()
@click.confirmation_option(prompt="Upload every operation and QSO again?")
def resync() -> None:
    """Mark all local records for upload again."""
    store = open_store()
    try:
        store.reset_synced_status()
    finally:
        store.close()
    click.echo("All records marked for sync. Run 'lofisync sync' to upload them.")
