"""CLI helpers for config loading and repository construction."""

from __future__ import annotations

import sqlite3

import typer

from stateboard.cli import _exitcodes as ec
from stateboard.cli._output import print_error
from stateboard.config import StateboardConfig, load_config
from stateboard.errors import ConfigError, StorageBackendError
from stateboard.log import configure_logging
from stateboard.storage import Repository, open_repository


def load_cli_config() -> StateboardConfig:
    """Load the config selected by --config and set up logging from it."""
    from stateboard.cli import state

    config = load_config(state.config)
    configure_logging(config.log_level)
    return config


def resolve_storage_binding(config: StateboardConfig) -> tuple[str | None, str | None]:
    """Return (db_path, storage_uri); CLI flags win over the config file."""
    from stateboard.cli import state

    if state.storage_uri:
        return None, state.storage_uri
    return state.db or config.db_path, None


def open_repo(config: StateboardConfig | None = None) -> Repository:
    """Open the repository selected by CLI flags and config."""
    config = config or load_cli_config()
    db_path, storage_uri = resolve_storage_binding(config)
    return open_repository(db_path, storage_uri=storage_uri, page_size=config.page_size)


def open_repo_or_exit(config: StateboardConfig | None = None) -> Repository:
    """Open the repository, exiting with DATABASE_ERROR when that fails."""
    try:
        return open_repo(config)
    except (ConfigError, StorageBackendError, sqlite3.Error) as e:
        print_error(f"Cannot open storage backend: {e}")
        raise typer.Exit(ec.DATABASE_ERROR)
