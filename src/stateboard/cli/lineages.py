"""stateboard lineages / stats / delete-lineage."""

from __future__ import annotations

import typer

from stateboard.cli import _exitcodes as ec
from stateboard.cli._output import print_error, print_object, print_table, to_data
from stateboard.cli._storage import open_repo_or_exit


def lineages_cmd() -> None:
    """List live lineages."""
    from stateboard.cli import state

    repo = open_repo_or_exit()
    try:
        values = repo.list_lineages()
    finally:
        repo.close()

    print_table(["lineage"], [[v] for v in values], json_mode=state.json_output)


def stats_cmd(
    page: int = typer.Option(1, "--page", min=1, help="Result page (1-based)"),
) -> None:
    """Summarize the latest snapshot of every lineage."""
    from stateboard.cli import state

    repo = open_repo_or_exit()
    try:
        states, current_page, total = repo.list_state_stats(page)
    finally:
        repo.close()

    if state.json_output:
        print_object(
            {"states": to_data(states), "page": current_page, "total": total}, json_mode=True
        )
        return

    headers = ["path", "lineage", "version_id", "tf_version", "serial", "resources"]
    rows = [
        [s.path, s.lineage, s.version_id, s.terraform_version, s.serial, s.resource_count]
        for s in states
    ]
    print_table(headers, rows)


def delete_lineage_cmd(
    lineage: str = typer.Argument(..., help="Lineage to hide from the index"),
) -> None:
    """Soft-delete a lineage and every snapshot under it."""
    from stateboard.cli import state

    repo = open_repo_or_exit()
    try:
        deleted = repo.delete_lineage(lineage)
    finally:
        repo.close()

    if not deleted:
        print_error(f"Lineage {lineage} not found")
        raise typer.Exit(ec.NOT_FOUND)
    print_object({"lineage": lineage, "deleted": True}, json_mode=state.json_output)
