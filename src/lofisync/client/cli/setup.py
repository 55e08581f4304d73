"""Setup command for the lofisync CLI.

Commands:
- init: Save the sync service connection settings
"""

from __future__ import annotations

import click

from lofisync.client.cli.config import get_config_file, load_config, save_config


@click.command()
@click.option("--server", required=True, help="Sync service URL (e.g., https://lofi.example.com).")
@click.option("--token", required=True, help="Bearer token for this device.")
@click.option(
    "--database",
    default=None,
    type=click.Path(dir_okay=False),
    help="Local log database (default: ~/.lofisync/log.db).",
)
@click.option("--call", "operator_call", default=None, help="Operator callsign.")
@click.option(
    "--public/--private",
    "consent_public",
    default=False,
    help="Consent to public sharing of logged contacts.",
)
def init(
    server: str,
    token: str,
    database: str | None,
    operator_call: str | None,
    consent_public: bool,
) -> None:
    """Configure the connection to the sync service."""
    config = load_config()
    config["server_url"] = server.rstrip("/")
    config["token"] = token
    config["consent_public"] = consent_public
    if database:
        config["database"] = database
    if operator_call:
        config["operator_call"] = operator_call.upper()
    save_config(config)

    click.echo(f"Configuration saved to {get_config_file()}")
