"""stateboard state / activity: inspect snapshots of one lineage."""

from __future__ import annotations

from typing import Optional

import typer

from stateboard.cli import _exitcodes as ec
from stateboard.cli._output import print_error, print_object, print_table, to_data
from stateboard.cli._storage import open_repo_or_exit
from stateboard.records import StateRecord


def state_cmd(
    lineage: str = typer.Argument(..., help="Lineage of the state"),
    version_id: Optional[str] = typer.Option(
        None, "--version-id", help="Version to show (default: latest)"
    ),
) -> None:
    """Show one snapshot with its modules, resources and attributes."""
    from stateboard.cli import state

    repo = open_repo_or_exit()
    try:
        if version_id is None:
            version_id = repo.default_version(lineage)
        record = repo.get_state(lineage, version_id) if version_id is not None else None
    finally:
        repo.close()

    if record is None:
        print_error(f"No state found for lineage {lineage}")
        raise typer.Exit(ec.NOT_FOUND)

    if state.json_output:
        print_object(to_data(record), json_mode=True)
    else:
        _print_state(record)


def _print_state(record: StateRecord) -> None:
    print(f"Path: {record.path}")
    print(f"Lineage: {record.lineage}")
    print(f"Version: {record.version_id} ({record.last_modified})")
    print(f"Terraform: {record.terraform_version}  Serial: {record.serial}")
    for module in record.modules:
        for resource in module.resources:
            prefix = f"{module.path}." if module.path else ""
            for instance in resource.instances:
                print(f"\n{prefix}{resource.address}{instance.index_key}")
                for attr in instance.attributes:
                    print(f"  {attr.key} = {attr.value}")


def activity_cmd(
    lineage: str = typer.Argument(..., help="Lineage to list"),
) -> None:
    """List every snapshot recorded under a lineage."""
    from stateboard.cli import state

    repo = open_repo_or_exit()
    try:
        activity = repo.get_lineage_activity(lineage)
    finally:
        repo.close()

    rows = [[a.path, a.version_id, a.last_modified, a.serial] for a in activity]
    print_table(
        ["path", "version_id", "last_modified", "serial"], rows, json_mode=state.json_output
    )
