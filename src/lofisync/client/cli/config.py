"""Configuration utilities for the lofisync CLI.

This module provides shared configuration functions used across CLI commands.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any


def get_config_dir() -> Path:
    """Get the configuration directory for lofisync.

    Returns:
        Path to ~/.lofisync.
    """
    return Path.home() / ".lofisync"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def load_config() -> dict[str, Any]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, Any]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def get_database_path() -> Path:
    """Get the local log database path.

    Returns:
        Configured path, or log.db in the config directory.
    """
    config = load_config()
    if config.get("database"):
        return Path(config["database"]).expanduser().resolve()
    return get_config_dir() / "log.db"


def get_settings_blob() -> dict[str, Any] | None:
    """Get the account settings sent to the server once per run.

    Returns:
        Settings dictionary, or None if no operator call is configured.
    """
    config = load_config()
    call = config.get("operator_call")
    if not call:
        return None
    return {"operatorCall": call}
