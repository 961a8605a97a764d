"""Tests for the storage layer: ingestion, history and state reads."""

from __future__ import annotations

import sqlite3

import pytest

from stateboard.errors import StorageBackendError
from stateboard.provider import Version
from stateboard.statefile import (
    NO_KEY,
    IntKey,
    Module,
    Resource,
    ResourceInstance,
    ResourceInstanceObject,
)
from stateboard.storage import ZERO_TIMESTAMP, open_repository, parse_storage_target
from tests.conftest import (
    LAST_MODIFIED,
    count_rows,
    make_state_file,
    sample_state_file,
)


class TestInsertVersion:
    def test_insert_version(self, repo):
        row_id = repo.insert_version(Version(id="foo"))
        assert row_id == 1
        assert repo.known_versions() == ["foo"]

    def test_insert_version_twice_is_idempotent(self, repo):
        first = repo.insert_version(Version(id="foo"))
        second = repo.insert_version(Version(id="foo"))
        assert first == second
        assert repo.known_versions() == ["foo"]

    def test_unknown_last_modified_is_zero(self, repo):
        repo.insert_version(Version(id="foo"))
        row = repo._conn.execute("SELECT last_modified FROM versions").fetchone()
        assert row[0] == ZERO_TIMESTAMP

    def test_last_modified_is_stored(self, repo):
        repo.insert_version(Version(id="foo", last_modified=LAST_MODIFIED))
        row = repo._conn.execute("SELECT last_modified FROM versions").fetchone()
        assert row[0] == "2024-01-02T03:04:05+00:00"

    def test_known_versions_in_ingestion_order(self, repo):
        for vid in ("v1", "v2", "v3"):
            repo.insert_version(Version(id=vid))
        assert repo.known_versions() == ["v1", "v2", "v3"]


class TestInsertState:
    def test_insert_empty_state(self, repo):
        state_id = repo.insert_state("path", "foo", make_state_file(serial=2))
        assert state_id == 1
        row = repo._conn.execute(
            "SELECT path, terraform_version, serial FROM states WHERE id = ?", (state_id,)
        ).fetchone()
        assert row == ("path", "1.0.0", 2)
        assert count_rows(repo, "versions") == 1
        assert count_rows(repo, "lineages") == 1

    def test_same_lineage_and_version_reuse_rows(self, repo):
        first = repo.insert_state("path", "foo", make_state_file(serial=1))
        second = repo.insert_state("path", "foo", make_state_file(serial=2))
        assert first != second
        assert count_rows(repo, "versions") == 1
        assert count_rows(repo, "lineages") == 1
        assert count_rows(repo, "states") == 2

    def test_reingesting_path_keeps_history(self, repo):
        repo.insert_state("path", "v1", make_state_file(serial=1))
        repo.insert_state("path", "v2", make_state_file(serial=2))
        rows = repo._conn.execute("SELECT serial FROM states ORDER BY id").fetchall()
        assert [r[0] for r in rows] == [1, 2]

    def test_lineage_linked_to_first_version(self, repo):
        repo.insert_state("path", "v1", make_state_file())
        repo.insert_state("path", "v2", make_state_file(serial=2))
        row = repo._conn.execute(
            "SELECT v.version_id FROM lineages l JOIN versions v ON v.id = l.version_id"
        ).fetchone()
        assert row[0] == "v1"

    def test_resource_tree(self, repo):
        repo.insert_state("path", "foo", sample_state_file())
        assert count_rows(repo, "modules") == 2
        assert count_rows(repo, "resources") == 4
        assert count_rows(repo, "instances") == 6
        keys = {
            r[0] for r in repo._conn.execute("SELECT index_key FROM instances").fetchall()
        }
        assert keys == {"", "[0]", "[1]", '["a"]', '["b"]'}

    def test_attribute_values_are_json(self, repo):
        repo.insert_state("path", "foo", sample_state_file())
        rows = dict(
            repo._conn.execute(
                "SELECT a.key, a.value FROM attributes a "
                "JOIN instances i ON i.id = a.instance_id "
                "JOIN resources r ON r.id = i.resource_id WHERE r.name = 'baz'"
            ).fetchall()
        )
        assert rows == {"woozles": '"confuzles"', "size": "3"}

    def test_instance_without_current_object_has_no_attributes(self, repo):
        module = Module(
            path="",
            resources=[
                Resource(mode="managed", type="null_resource", name="x",
                         instances={NO_KEY: ResourceInstance()})
            ],
        )
        repo.insert_state("path", "foo", make_state_file(modules=[module]))
        assert count_rows(repo, "instances") == 1
        assert count_rows(repo, "attributes") == 0

    def test_malformed_attributes_do_not_fail_ingestion(self, repo):
        module = Module(
            path="",
            resources=[
                Resource(
                    mode="managed",
                    type="test_thing",
                    name="broken",
                    instances={
                        NO_KEY: ResourceInstance(
                            current=ResourceInstanceObject(attrs_json="{broken")
                        ),
                        IntKey(0): ResourceInstance(
                            current=ResourceInstanceObject(attrs_json='"bar"')
                        ),
                    },
                )
            ],
        )
        repo.insert_state("path", "foo", make_state_file(modules=[module]))
        assert count_rows(repo, "states") == 1
        assert count_rows(repo, "instances") == 2
        assert count_rows(repo, "attributes") == 0

    def test_failure_rolls_back_everything(self, repo, monkeypatch):
        original = repo._insert_module
        inserted = []

        def fail_on_second_module(state_id, module):
            if inserted:
                raise sqlite3.IntegrityError("UNIQUE constraint failed: attributes.key")
            original(state_id, module)
            inserted.append(module.path)

        monkeypatch.setattr(repo, "_insert_module", fail_on_second_module)
        with pytest.raises(sqlite3.IntegrityError):
            repo.insert_state("path", "foo", sample_state_file())

        assert inserted == [""]
        for table in (
            "versions",
            "lineages",
            "states",
            "modules",
            "resources",
            "instances",
            "attributes",
        ):
            assert count_rows(repo, table) == 0
        assert repo.known_versions() == []

    def test_storage_errors_propagate(self, repo, monkeypatch):
        def fail(*_args, **_kwargs):
            raise sqlite3.IntegrityError("UNIQUE constraint failed")

        monkeypatch.setattr(repo, "_insert_module", fail)
        with pytest.raises(sqlite3.IntegrityError):
            repo.insert_state("path", "foo", sample_state_file())
        assert count_rows(repo, "states") == 0

    def test_repository_usable_after_rollback(self, repo, monkeypatch):
        def fail(*_args, **_kwargs):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(repo, "_insert_module", fail)
        with pytest.raises(sqlite3.OperationalError):
            repo.insert_state("path", "bad", sample_state_file())
        monkeypatch.undo()

        repo.insert_state("path", "good", sample_state_file())
        assert repo.known_versions() == ["good"]
        assert count_rows(repo, "modules") == 2


class TestGetState:
    def test_get_state(self, repo):
        state_id = repo.insert_state(
            "path", "foo", sample_state_file(), last_modified=LAST_MODIFIED
        )
        state = repo.get_state("lineage", "foo")
        assert state is not None
        assert state.id == state_id
        assert state.path == "path"
        assert state.lineage == "lineage"
        assert state.version_id == "foo"
        assert state.serial == 2
        assert state.terraform_version == "1.0.0"
        assert state.last_modified == "2024-01-02T03:04:05+00:00"

    def test_get_state_tree(self, repo):
        repo.insert_state("path", "foo", sample_state_file())
        state = repo.get_state("lineage", "foo")
        assert [m.path for m in state.modules] == ["", "module.network"]

        root = state.modules[0]
        assert [r.address for r in root.resources] == [
            "test_thing.baz",
            "aws_instance.web",
            "data.aws_ami.ubuntu",
        ]
        web = root.resources[1]
        assert [i.index_key for i in web.instances] == ["[0]", "[1]"]
        tags = {a.key: a.value for a in web.instances[0].attributes}["tags"]
        assert tags == '{"Name":"web-0"}'

        subnet = state.modules[1].resources[0]
        assert [i.index_key for i in subnet.instances] == ['["a"]', '["b"]']

    def test_get_state_missing(self, repo):
        assert repo.get_state("lineage", "foo") is None

    def test_get_state_wrong_version(self, repo):
        repo.insert_state("path", "foo", make_state_file())
        assert repo.get_state("lineage", "bar") is None

    def test_get_state_returns_latest_ingestion(self, repo):
        repo.insert_state("old-path", "foo", make_state_file(serial=1))
        newest = repo.insert_state("new-path", "foo", make_state_file(serial=1))
        state = repo.get_state("lineage", "foo")
        assert state.id == newest
        assert state.path == "new-path"

    def test_get_state_empty_tree(self, repo):
        repo.insert_state("path", "foo", make_state_file())
        assert repo.get_state("lineage", "foo").modules == []


class TestLineageActivity:
    def test_single_state(self, repo):
        repo.insert_state("path", "foo", make_state_file())
        activity = repo.get_lineage_activity("lineage")
        assert len(activity) == 1
        assert activity[0].path == "path"
        assert activity[0].version_id == "foo"

    def test_ordered_by_version_time(self, repo):
        from datetime import timedelta

        repo.insert_state(
            "path", "v2", make_state_file(serial=2), last_modified=LAST_MODIFIED
        )
        repo.insert_state(
            "path",
            "v1",
            make_state_file(serial=1),
            last_modified=LAST_MODIFIED - timedelta(days=1),
        )
        activity = repo.get_lineage_activity("lineage")
        assert [a.version_id for a in activity] == ["v1", "v2"]
        assert [a.serial for a in activity] == [1, 2]

    def test_unknown_lineage(self, repo):
        assert repo.get_lineage_activity("nope") == []

    def test_other_lineages_excluded(self, repo):
        repo.insert_state("a", "v1", make_state_file(lineage="one"))
        repo.insert_state("b", "v2", make_state_file(lineage="two"))
        assert [a.path for a in repo.get_lineage_activity("two")] == ["b"]


class TestSoftDelete:
    def test_delete_lineage(self, repo):
        repo.insert_state("path", "foo", make_state_file())
        assert repo.delete_lineage("lineage") is True
        assert repo.get_state("lineage", "foo") is None
        assert repo.get_lineage_activity("lineage") == []
        assert repo.list_lineages() == []

    def test_delete_unknown_lineage(self, repo):
        assert repo.delete_lineage("nope") is False

    def test_versions_survive_delete(self, repo):
        repo.insert_state("path", "foo", make_state_file())
        repo.delete_lineage("lineage")
        assert repo.known_versions() == ["foo"]

    def test_reingest_after_delete_creates_new_lineage(self, repo):
        repo.insert_state("path", "v1", make_state_file(serial=1))
        repo.delete_lineage("lineage")
        repo.insert_state("path", "v2", make_state_file(serial=2))

        assert count_rows(repo, "lineages") == 2
        activity = repo.get_lineage_activity("lineage")
        assert [a.version_id for a in activity] == ["v2"]
        assert repo.get_state("lineage", "v1") is None


class TestDefaultVersion:
    def test_highest_serial_wins(self, repo):
        repo.insert_state("path", "v1", make_state_file(serial=5))
        repo.insert_state("path", "v2", make_state_file(serial=7))
        assert repo.default_version("lineage") == "v2"

    def test_missing(self, repo):
        assert repo.default_version("lineage") is None


class TestStorageTarget:
    def test_default(self):
        target = parse_storage_target()
        assert target.db_path == "stateboard.db"

    def test_relative_uri(self):
        assert parse_storage_target(storage_uri="sqlite:///states.db").db_path == "states.db"

    def test_absolute_uri(self):
        target = parse_storage_target(storage_uri="sqlite:////var/lib/states.db")
        assert target.db_path == "/var/lib/states.db"

    def test_memory_uri(self):
        assert parse_storage_target(storage_uri="sqlite:///:memory:").db_path == ":memory:"

    def test_unsupported_scheme(self):
        with pytest.raises(StorageBackendError, match="Unsupported storage URI scheme"):
            parse_storage_target(storage_uri="postgres://localhost/db")

    def test_conflicting_path(self):
        with pytest.raises(StorageBackendError, match="Conflicting"):
            parse_storage_target(db_path="a.db", storage_uri="sqlite:///b.db")

    def test_open_repository(self, tmp_db):
        repo = open_repository(tmp_db, page_size=5)
        try:
            assert repo.page_size == 5
            assert repo.storage_info()["states"] == 0
        finally:
            repo.close()
