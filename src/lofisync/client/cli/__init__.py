"""Command-line interface for lofisync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- init: Configure the connection to the sync service
- sync: Synchronize the local log with the sync service
- status: Show sync cursor and pending local changes
- resync: Mark all local records for upload again
"""

from __future__ import annotations

import click

from lofisync.client.cli.config import (
    get_config_dir,
    get_config_file,
    get_database_path,
    get_settings_blob,
    load_config,
    save_config,
)
from lofisync.client.cli.setup import init
from lofisync.client.cli.sync import resync, status, sync


@click.group()
@click.version_option(package_name="lofisync")
def cli() -> None:
    """lofisync - Offline-first log synchronization."""


# Setup commands
cli.add_command(init)

# Sync commands
cli.add_command(sync)
cli.add_command(status)
cli.add_command(resync)

__all__ = [
    "cli",
    "get_config_dir",
    "get_config_file",
    "get_database_path",
    "get_settings_blob",
    "load_config",
    "save_config",
]
