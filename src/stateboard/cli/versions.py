"""stateboard versions / info: inspect what the index holds."""

from __future__ import annotations

import os

import typer

from stateboard.cli._output import print_object, print_table
from stateboard.cli._storage import open_repo_or_exit


def versions_cmd() -> None:
    """List every version identifier ever ingested."""
    from stateboard.cli import state

    repo = open_repo_or_exit()
    try:
        known = repo.known_versions()
    finally:
        repo.close()

    print_table(["version_id"], [[v] for v in known], json_mode=state.json_output)


def info_cmd(
    stats: bool = typer.Option(False, "--stats", help="Show resource type and Terraform counts"),
) -> None:
    """Show database status and row counts."""
    from stateboard.cli import state

    repo = open_repo_or_exit()
    try:
        data = repo.storage_info()
        if os.path.exists(repo.db_path):
            data["file_size_bytes"] = os.path.getsize(repo.db_path)
        if stats:
            data["resource_types"] = dict(repo.list_resource_types_with_count())
            data["terraform_versions"] = dict(repo.list_terraform_versions_with_count())
    finally:
        repo.close()

    print_object(data, json_mode=state.json_output)
