"""stateboard CLI: ingest Terraform states and query the index."""

from __future__ import annotations

from typing import Optional

import typer

from stateboard.cli import ingest, lineages, locks, search, state_cmd, sync_cmd, versions

app = typer.Typer(
    name="stateboard",
    help="stateboard: index Terraform remote states and search their resources.",
    no_args_is_help=True,
)


class _State:
    """Global CLI state shared across subcommands."""

    db: str | None = None
    storage_uri: str | None = None
    config: str | None = None
    json_output: bool = False


state = _State()


def _version_callback(value: bool) -> None:
    if value:
        try:
            from importlib.metadata import version

            v = version("stateboard")
        except Exception:
            v = "unknown"
        print(f"stateboard {v}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    db: Optional[str] = typer.Option(
        None,
        "--db",
        envvar="STATEBOARD_DB",
        help="SQLite database file path (default: stateboard.db)",
    ),
    storage_uri: Optional[str] = typer.Option(
        None,
        "--storage-uri",
        envvar="STATEBOARD_STORAGE_URI",
        help="Storage URI (e.g. sqlite:///stateboard.db)",
    ),
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        envvar="STATEBOARD_CONFIG",
        help="YAML config file path",
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output when supported"),
    version: bool = typer.Option(
        False, "--version", help="Show version", is_eager=True, callback=_version_callback
    ),
) -> None:
    """Global options for all stateboard commands."""
    from stateboard.storage import parse_storage_target

    if storage_uri:
        try:
            parse_storage_target(db_path=db, storage_uri=storage_uri)
        except Exception as e:
            raise typer.BadParameter(str(e))

    state.db = db
    state.storage_uri = storage_uri
    state.config = config
    state.json_output = json_output
    if ctx.invoked_subcommand is None and not version:
        print(ctx.get_help())
        raise typer.Exit()


app.command(name="ingest")(ingest.ingest_cmd)
app.command(name="sync")(sync_cmd.sync_cmd)
app.command(name="state")(state_cmd.state_cmd)
app.command(name="activity")(state_cmd.activity_cmd)
app.command(name="versions")(versions.versions_cmd)
app.command(name="search")(search.search_cmd)
app.command(name="lineages")(lineages.lineages_cmd)
app.command(name="stats")(lineages.stats_cmd)
app.command(name="delete-lineage")(lineages.delete_lineage_cmd)
app.command(name="locks")(locks.locks_cmd)
app.command(name="info")(versions.info_cmd)


def main() -> None:
    """Entry point for the stateboard CLI."""
    app()
