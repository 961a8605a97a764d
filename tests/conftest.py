"""Shared test fixtures for stateboard tests."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

import pytest

from stateboard.statefile import (
    NO_KEY,
    IntKey,
    Module,
    Resource,
    ResourceInstance,
    ResourceInstanceObject,
    State,
    StateFile,
    StringKey,
)
from stateboard.storage import Repository

# --- State builders ---


def instance(attrs: dict[str, Any]) -> ResourceInstance:
    return ResourceInstance(current=ResourceInstanceObject(attrs_json=json.dumps(attrs)))


def make_state_file(
    lineage: str = "lineage",
    serial: int = 1,
    terraform_version: str = "1.0.0",
    modules: list[Module] | None = None,
) -> StateFile:
    return StateFile(
        lineage=lineage,
        serial=serial,
        terraform_version=terraform_version,
        state=State(modules=modules or []),
    )


def sample_state_file(lineage: str = "lineage", serial: int = 2) -> StateFile:
    """Root module with a singleton, a counted and a for_each resource, plus a child module."""
    root = Module(
        path="",
        resources=[
            Resource(
                mode="managed",
                type="test_thing",
                name="baz",
                instances={NO_KEY: instance({"woozles": "confuzles", "size": 3})},
            ),
            Resource(
                mode="managed",
                type="aws_instance",
                name="web",
                instances={
                    IntKey(0): instance({"ami": "ami-1", "tags": {"Name": "web-0"}}),
                    IntKey(1): instance({"ami": "ami-1", "tags": {"Name": "web-1"}}),
                },
            ),
            Resource(
                mode="data",
                type="aws_ami",
                name="ubuntu",
                instances={NO_KEY: instance({"id": "ami-1"})},
            ),
        ],
    )
    child = Module(
        path="module.network",
        resources=[
            Resource(
                mode="managed",
                type="aws_subnet",
                name="private",
                instances={
                    StringKey("a"): instance({"cidr_block": "10.0.1.0/24"}),
                    StringKey("b"): instance({"cidr_block": "10.0.2.0/24"}),
                },
            )
        ],
    )
    return make_state_file(lineage=lineage, serial=serial, modules=[root, child])


def state_document(lineage: str = "lineage", serial: int = 1, **overrides: Any) -> dict[str, Any]:
    """A Terraform JSON state document (format version 4)."""
    doc: dict[str, Any] = {
        "version": 4,
        "terraform_version": "1.0.0",
        "serial": serial,
        "lineage": lineage,
        "outputs": {},
        "resources": [
            {
                "mode": "managed",
                "type": "test_thing",
                "name": "baz",
                "provider": 'provider["registry.terraform.io/hashicorp/test"]',
                "instances": [
                    {"schema_version": 0, "attributes": {"woozles": "confuzles"}},
                ],
            },
            {
                "module": "module.network",
                "mode": "managed",
                "type": "aws_subnet",
                "name": "private",
                "provider": 'provider["registry.terraform.io/hashicorp/aws"]',
                "instances": [
                    {"index_key": "a", "attributes": {"cidr_block": "10.0.1.0/24"}},
                    {"index_key": "b", "attributes": {"cidr_block": "10.0.2.0/24"}},
                ],
            },
        ],
    }
    doc.update(overrides)
    return doc


LAST_MODIFIED = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


# --- Fixtures ---


@pytest.fixture
def tmp_db(tmp_path):
    """Create a temporary SQLite database path."""
    return str(tmp_path / "test.db")


@pytest.fixture
def repo(tmp_db):
    """Create a Repository instance with a temporary database."""
    r = Repository(tmp_db)
    yield r
    r.close()


@pytest.fixture
def small_page_repo(tmp_db):
    """Repository with a page size small enough to exercise pagination."""
    r = Repository(tmp_db, page_size=2)
    yield r
    r.close()


def count_rows(repo: Repository, table: str) -> int:
    return repo._conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
