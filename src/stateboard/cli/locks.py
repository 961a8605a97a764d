"""stateboard locks: show state locks currently held in every provider."""

from __future__ import annotations

import typer

from stateboard.cli import _exitcodes as ec
from stateboard.cli._output import print_error, print_table
from stateboard.cli._storage import load_cli_config
from stateboard.errors import ConfigError, ProviderError
from stateboard.provider import configure_providers


def locks_cmd() -> None:
    """List held state locks."""
    from stateboard.cli import state

    try:
        config = load_cli_config()
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(ec.USAGE_ERROR)

    rows = []
    failed = False
    for provider in configure_providers(config):
        try:
            locks = provider.get_locks()
        except ProviderError as e:
            print_error(str(e))
            failed = True
            continue
        for path, lock in sorted(locks.items()):
            rows.append([provider.name, path, lock.id, lock.operation, lock.who, lock.created])

    print_table(
        ["provider", "path", "lock_id", "operation", "who", "created"],
        rows,
        json_mode=state.json_output,
    )
    if failed:
        raise typer.Exit(ec.PROVIDER_ERROR)
