"""Shared fixtures for CLI tests."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

import pytest
from typer.testing import CliRunner

from stateboard.cli import app
from stateboard.storage import Repository
from tests.conftest import LAST_MODIFIED, make_state_file, sample_state_file, state_document

if TYPE_CHECKING:
    from click.testing import Result


@pytest.fixture(autouse=True)
def _restore_logging():
    """Commands reconfigure root logging against the runner's streams."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def runner():
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def cli_db(tmp_path):
    """Create a temp DB path for the CLI."""
    return str(tmp_path / "cli_test.db")


@pytest.fixture
def seeded_db(cli_db):
    """Create a DB with two lineages, one of them with history."""
    repo = Repository(cli_db)
    for serial, version_id in ((1, "v1"), (2, "v2")):
        repo.insert_state(
            "prod.tfstate",
            version_id,
            sample_state_file(serial=serial),
            last_modified=LAST_MODIFIED,
        )
    repo.insert_state(
        "dev.tfstate",
        "v3",
        make_state_file(lineage="dev", terraform_version="1.5.7"),
        last_modified=LAST_MODIFIED,
    )
    repo.close()
    return cli_db


@pytest.fixture
def state_file_path(tmp_path):
    """A Terraform state file on disk."""
    path = tmp_path / "terraform.tfstate"
    path.write_text(json.dumps(state_document(lineage="from-disk", serial=4)))
    return str(path)


@pytest.fixture
def quiet_config(tmp_path):
    """Write a config file that keeps sync logging off the output."""

    def _write(**sections) -> str:
        path = tmp_path / "stateboard.yaml"
        lines = ["log_level: WARNING"]
        for name, items in sections.items():
            lines.append(f"{name}:")
            for item in items:
                first = True
                for key, value in item.items():
                    lines.append(f"  {'- ' if first else '  '}{key}: {json.dumps(value)}")
                    first = False
        path.write_text("\n".join(lines) + "\n")
        return str(path)

    return _write


def invoke(runner: CliRunner, args: list[str], db_path: str | None = None) -> "Result":
    """Invoke CLI with proper state setup."""
    if db_path:
        # Inject --db before subcommand
        args = ["--db", db_path] + args
    result = runner.invoke(app, args, catch_exceptions=False)
    return result
