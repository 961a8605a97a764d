"""stateboard ingest: index a local Terraform state file."""

from __future__ import annotations

import hashlib
import os
import sqlite3
from datetime import datetime, timezone
from typing import Optional

import typer

from stateboard.cli import _exitcodes as ec
from stateboard.cli._output import print_error, print_object
from stateboard.cli._storage import open_repo_or_exit
from stateboard.errors import StateDecodeError
from stateboard.statefile import read_state


def ingest_cmd(
    file: str = typer.Argument(..., help="Path to a .tfstate file (JSON format version 4)"),
    path: Optional[str] = typer.Option(
        None, "--path", help="State path to record (default: the file path)"
    ),
    version_id: Optional[str] = typer.Option(
        None, "--version-id", help="Version identifier (default: SHA-256 of the file)"
    ),
) -> None:
    """Ingest one state file as a new snapshot."""
    from stateboard.cli import state

    try:
        with open(file, "rb") as f:
            data = f.read()
        modified = datetime.fromtimestamp(os.path.getmtime(file), tz=timezone.utc)
    except OSError as e:
        print_error(f"Cannot read state file: {e}")
        raise typer.Exit(ec.USAGE_ERROR)

    try:
        state_file = read_state(data)
    except StateDecodeError as e:
        print_error(str(e))
        raise typer.Exit(ec.EXECUTION_FAILURE)

    repo = open_repo_or_exit()

    record_path = path or file
    record_version = version_id or hashlib.sha256(data).hexdigest()
    try:
        state_id = repo.insert_state(
            record_path, record_version, state_file, last_modified=modified
        )
    except sqlite3.Error as e:
        print_error(f"Ingestion failed: {e}")
        raise typer.Exit(ec.EXECUTION_FAILURE)
    finally:
        repo.close()

    print_object(
        {
            "state_id": state_id,
            "path": record_path,
            "version_id": record_version,
            "lineage": state_file.lineage,
            "serial": state_file.serial,
            "terraform_version": state_file.terraform_version,
        },
        json_mode=state.json_output,
    )
