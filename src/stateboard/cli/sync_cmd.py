"""stateboard sync: pull new state versions from configured providers."""

from __future__ import annotations

from dataclasses import asdict
from typing import Optional

import typer

from stateboard.cli import _exitcodes as ec
from stateboard.cli._output import print_error, print_object
from stateboard.cli._storage import load_cli_config, open_repo_or_exit
from stateboard.errors import ConfigError
from stateboard.provider import configure_providers
from stateboard.sync import run_sync


def sync_cmd(
    once: bool = typer.Option(False, "--once", help="Run a single pass and exit"),
    interval: Optional[float] = typer.Option(
        None, "--interval", help="Seconds between passes (default from config)"
    ),
) -> None:
    """Sync state versions from every configured provider into the index."""
    from stateboard.cli import state

    try:
        config = load_cli_config()
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(ec.USAGE_ERROR)

    providers = configure_providers(config)
    if not providers:
        print_error("No providers configured; add 's3' or 'directories' to the config file")
        raise typer.Exit(ec.USAGE_ERROR)

    repo = open_repo_or_exit(config)

    try:
        report = run_sync(
            repo,
            providers,
            interval_sec=interval if interval is not None else config.sync_interval_sec,
            max_attempts=config.sync_max_attempts,
            once=once,
        )
    except KeyboardInterrupt:
        raise typer.Exit(ec.SUCCESS)
    finally:
        repo.close()

    print_object(asdict(report), json_mode=state.json_output)
    if report.failed:
        raise typer.Exit(ec.PROVIDER_ERROR)
