"""SQLite-backed state index: ingestion and read/search queries."""

from __future__ import annotations

import os
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterator
from urllib.parse import urlparse

from stateboard.errors import StorageBackendError
from stateboard.filters import SearchFilters, compile_filters
from stateboard.normalize import Attribute, flatten_attributes, render_index_key
from stateboard.provider import Version
from stateboard.records import (
    InstanceRecord,
    LineageActivity,
    ModuleRecord,
    ResourceRecord,
    SearchPage,
    SearchResult,
    StatePage,
    StateRecord,
    StateStat,
)
from stateboard.statefile import Module, StateFile

DEFAULT_PAGE_SIZE = 20

# Stored when the backend does not report a modification time.
ZERO_TIMESTAMP = datetime(1, 1, 1, tzinfo=timezone.utc).isoformat()

_SEARCH_FROM = (
    "FROM attributes a "
    "JOIN instances i ON i.id = a.instance_id "
    "JOIN resources r ON r.id = i.resource_id "
    "JOIN modules m ON m.id = r.module_id "
    "JOIN states s ON s.id = m.state_id "
    "JOIN versions v ON v.id = s.version_id "
    "JOIN lineages l ON l.id = s.lineage_id"
)

_SEARCH_ORDER = (
    "ORDER BY s.path ASC, m.path ASC, r.type ASC, r.name ASC, i.index_key ASC, a.key ASC, a.id ASC"
)

# Latest snapshot (highest serial, then latest ingestion) of every live lineage.
_LATEST_STATES = (
    "SELECT s.id, s.path, l.value AS lineage, v.version_id, s.terraform_version, "
    "s.serial, v.last_modified "
    "FROM states s "
    "JOIN lineages l ON l.id = s.lineage_id "
    "JOIN versions v ON v.id = s.version_id "
    "WHERE l.deleted_at IS NULL AND s.id = ("
    "  SELECT s2.id FROM states s2 WHERE s2.lineage_id = s.lineage_id "
    "  ORDER BY s2.serial DESC, s2.id DESC LIMIT 1"
    ")"
)


def _iso(value: datetime | None) -> str:
    if value is None:
        return ZERO_TIMESTAMP
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _offset(page: int, page_size: int) -> int:
    return (max(page, 1) - 1) * page_size


class Repository:
    """SQLite-backed index of ingested Terraform states."""

    def __init__(self, db_path: str, *, page_size: int = DEFAULT_PAGE_SIZE) -> None:
        self.db_path = db_path
        self.page_size = page_size
        self._conn = sqlite3.connect(db_path)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._create_tables()

    def _create_tables(self) -> None:
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS versions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                version_id TEXT NOT NULL UNIQUE,
                last_modified TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS lineages (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                value TEXT NOT NULL,
                deleted_at TEXT,
                version_id INTEGER,
                FOREIGN KEY (version_id) REFERENCES versions(id)
            );

            CREATE UNIQUE INDEX IF NOT EXISTS idx_lineages_live_value
                ON lineages(value) WHERE deleted_at IS NULL;

            CREATE TABLE IF NOT EXISTS states (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                path TEXT NOT NULL,
                lineage_id INTEGER NOT NULL,
                version_id INTEGER NOT NULL,
                terraform_version TEXT NOT NULL,
                serial INTEGER NOT NULL,
                created_at TEXT NOT NULL,
                FOREIGN KEY (lineage_id) REFERENCES lineages(id) ON DELETE CASCADE,
                FOREIGN KEY (version_id) REFERENCES versions(id)
            );

            CREATE INDEX IF NOT EXISTS idx_states_lineage ON states(lineage_id, serial DESC);
            CREATE INDEX IF NOT EXISTS idx_states_path ON states(path);

            CREATE TABLE IF NOT EXISTS modules (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                state_id INTEGER NOT NULL,
                path TEXT NOT NULL,
                FOREIGN KEY (state_id) REFERENCES states(id) ON DELETE CASCADE
            );

            CREATE INDEX IF NOT EXISTS idx_modules_state ON modules(state_id);

            CREATE TABLE IF NOT EXISTS resources (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                module_id INTEGER NOT NULL,
                type TEXT NOT NULL,
                name TEXT NOT NULL,
                mode TEXT NOT NULL,
                FOREIGN KEY (module_id) REFERENCES modules(id) ON DELETE CASCADE
            );

            CREATE INDEX IF NOT EXISTS idx_resources_module ON resources(module_id);
            CREATE INDEX IF NOT EXISTS idx_resources_type_name ON resources(type, name);

            CREATE TABLE IF NOT EXISTS instances (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                resource_id INTEGER NOT NULL,
                index_key TEXT NOT NULL DEFAULT '',
                FOREIGN KEY (resource_id) REFERENCES resources(id) ON DELETE CASCADE
            );

            CREATE INDEX IF NOT EXISTS idx_instances_resource ON instances(resource_id);

            CREATE TABLE IF NOT EXISTS attributes (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                instance_id INTEGER NOT NULL,
                key TEXT NOT NULL,
                value TEXT NOT NULL,
                UNIQUE (instance_id, key),
                FOREIGN KEY (instance_id) REFERENCES instances(id) ON DELETE CASCADE
            );

            CREATE INDEX IF NOT EXISTS idx_attributes_key ON attributes(key);
        """)
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()

    # --- Transaction helpers ---

    def begin_transaction(self) -> None:
        self._conn.execute("BEGIN IMMEDIATE")

    def commit_transaction(self) -> None:
        self._conn.commit()

    def rollback_transaction(self) -> None:
        self._conn.rollback()

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        self.begin_transaction()
        try:
            yield
            self.commit_transaction()
        except BaseException:
            self.rollback_transaction()
            raise

    # --- Ingestion ---

    def _find_or_create_version(self, version_id: str, last_modified: datetime | None) -> int:
        self._conn.execute(
            "INSERT INTO versions (version_id, last_modified) VALUES (?, ?) "
            "ON CONFLICT DO NOTHING",
            (version_id, _iso(last_modified)),
        )
        row = self._conn.execute(
            "SELECT id FROM versions WHERE version_id = ?", (version_id,)
        ).fetchone()
        return int(row[0])

    def _find_or_create_lineage(self, value: str, version_row_id: int) -> int:
        self._conn.execute(
            "INSERT INTO lineages (value, version_id) VALUES (?, ?) ON CONFLICT DO NOTHING",
            (value, version_row_id),
        )
        row = self._conn.execute(
            "SELECT id FROM lineages WHERE value = ? AND deleted_at IS NULL",
            (value,),
        ).fetchone()
        return int(row[0])

    def insert_version(self, version: Version) -> int:
        """Register a backend version, returning its row id. Idempotent."""
        with self._transaction():
            return self._find_or_create_version(version.id, version.last_modified)

    def insert_state(
        self,
        path: str,
        version_id: str,
        state_file: StateFile,
        *,
        last_modified: datetime | None = None,
    ) -> int:
        """Record one snapshot and its resource tree atomically, returning the state id.

        Version and lineage rows are reused when they already exist; the state
        row itself is always new, so re-ingesting a path keeps its history.
        """
        with self._transaction():
            version_row_id = self._find_or_create_version(version_id, last_modified)
            lineage_row_id = self._find_or_create_lineage(state_file.lineage, version_row_id)
            cursor = self._conn.execute(
                "INSERT INTO states "
                "(path, lineage_id, version_id, terraform_version, serial, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    path,
                    lineage_row_id,
                    version_row_id,
                    state_file.terraform_version,
                    state_file.serial,
                    _now_iso(),
                ),
            )
            state_id = int(cursor.lastrowid)  # type: ignore[arg-type]
            for module in state_file.state.modules:
                self._insert_module(state_id, module)
        return state_id

    def _insert_module(self, state_id: int, module: Module) -> None:
        cursor = self._conn.execute(
            "INSERT INTO modules (state_id, path) VALUES (?, ?)", (state_id, module.path)
        )
        module_id = cursor.lastrowid
        for resource in module.resources:
            cursor = self._conn.execute(
                "INSERT INTO resources (module_id, type, name, mode) VALUES (?, ?, ?, ?)",
                (module_id, resource.type, resource.name, resource.mode),
            )
            resource_id = cursor.lastrowid
            for key, instance in resource.instances.items():
                cursor = self._conn.execute(
                    "INSERT INTO instances (resource_id, index_key) VALUES (?, ?)",
                    (resource_id, render_index_key(key)),
                )
                instance_id = cursor.lastrowid
                self._conn.executemany(
                    "INSERT INTO attributes (instance_id, key, value) VALUES (?, ?, ?)",
                    [(instance_id, a.key, a.value) for a in flatten_attributes(instance.current)],
                )

    def delete_lineage(self, value: str) -> bool:
        """Tombstone the live lineage with this value; False when none is live."""
        with self._transaction():
            cursor = self._conn.execute(
                "UPDATE lineages SET deleted_at = ? WHERE value = ? AND deleted_at IS NULL",
                (_now_iso(), value),
            )
        return cursor.rowcount > 0

    # --- State reads ---

    def get_state(self, lineage: str, version_id: str) -> StateRecord | None:
        """Return the snapshot of a lineage at a version, or None."""
        row = self._conn.execute(
            "SELECT s.id, s.path, l.value, v.version_id, v.last_modified, "
            "s.terraform_version, s.serial, s.created_at "
            "FROM states s "
            "JOIN lineages l ON l.id = s.lineage_id "
            "JOIN versions v ON v.id = s.version_id "
            "WHERE l.value = ? AND v.version_id = ? AND l.deleted_at IS NULL "
            "ORDER BY s.id DESC LIMIT 1",
            (lineage, version_id),
        ).fetchone()
        if row is None:
            return None
        state = StateRecord(
            id=row[0],
            path=row[1],
            lineage=row[2],
            version_id=row[3],
            last_modified=row[4],
            terraform_version=row[5],
            serial=row[6],
            created_at=row[7],
        )
        state.modules = self._load_modules(state.id)
        return state

    def _load_modules(self, state_id: int) -> list[ModuleRecord]:
        modules: dict[int, ModuleRecord] = {}
        for mid, path in self._conn.execute(
            "SELECT id, path FROM modules WHERE state_id = ? ORDER BY id", (state_id,)
        ):
            modules[mid] = ModuleRecord(path=path)

        resources: dict[int, ResourceRecord] = {}
        for rid, mid, rtype, name, mode in self._conn.execute(
            "SELECT r.id, r.module_id, r.type, r.name, r.mode FROM resources r "
            "JOIN modules m ON m.id = r.module_id "
            "WHERE m.state_id = ? ORDER BY r.id",
            (state_id,),
        ):
            resources[rid] = ResourceRecord(type=rtype, name=name, mode=mode)
            modules[mid].resources.append(resources[rid])

        instances: dict[int, InstanceRecord] = {}
        for iid, rid, index_key in self._conn.execute(
            "SELECT i.id, i.resource_id, i.index_key FROM instances i "
            "JOIN resources r ON r.id = i.resource_id "
            "JOIN modules m ON m.id = r.module_id "
            "WHERE m.state_id = ? ORDER BY i.id",
            (state_id,),
        ):
            instances[iid] = InstanceRecord(index_key=index_key)
            resources[rid].instances.append(instances[iid])

        for iid, key, value in self._conn.execute(
            "SELECT a.instance_id, a.key, a.value FROM attributes a "
            "JOIN instances i ON i.id = a.instance_id "
            "JOIN resources r ON r.id = i.resource_id "
            "JOIN modules m ON m.id = r.module_id "
            "WHERE m.state_id = ? ORDER BY a.id",
            (state_id,),
        ):
            instances[iid].attributes.append(Attribute(key=key, value=value))

        return list(modules.values())

    def get_lineage_activity(self, lineage: str) -> list[LineageActivity]:
        """List every snapshot recorded under a lineage, oldest version first."""
        rows = self._conn.execute(
            "SELECT s.path, v.version_id, v.last_modified, s.serial "
            "FROM states s "
            "JOIN lineages l ON l.id = s.lineage_id "
            "JOIN versions v ON v.id = s.version_id "
            "WHERE l.value = ? AND l.deleted_at IS NULL "
            "ORDER BY v.last_modified ASC, s.id ASC",
            (lineage,),
        ).fetchall()
        return [
            LineageActivity(path=r[0], version_id=r[1], last_modified=r[2], serial=r[3])
            for r in rows
        ]

    def known_versions(self) -> list[str]:
        rows = self._conn.execute("SELECT version_id FROM versions ORDER BY id").fetchall()
        return [r[0] for r in rows]

    def default_version(self, lineage: str) -> str | None:
        """Return the version id of the lineage's latest snapshot."""
        row = self._conn.execute(
            f"SELECT version_id FROM ({_LATEST_STATES}) WHERE lineage = ?",
            (lineage,),
        ).fetchone()
        return row[0] if row else None

    # --- Search ---

    def search_attribute(self, filters: SearchFilters) -> SearchPage:
        """Search attributes matching every given filter, one page at a time."""
        params: list[Any] = []
        where_sql = compile_filters(filters, params)

        total = self._conn.execute(
            f"SELECT COUNT(*) {_SEARCH_FROM} WHERE {where_sql}", params
        ).fetchone()[0]

        rows = self._conn.execute(
            "SELECT s.path, v.version_id, s.terraform_version, l.value, m.path, "
            "r.type, r.name, r.mode, i.index_key, a.key, a.value "
            f"{_SEARCH_FROM} WHERE {where_sql} {_SEARCH_ORDER} LIMIT ? OFFSET ?",
            [*params, self.page_size, _offset(filters.page, self.page_size)],
        ).fetchall()
        results = [
            SearchResult(
                path=r[0],
                version_id=r[1],
                tf_version=r[2],
                lineage=r[3],
                module_path=r[4],
                resource_type=r[5],
                resource_name=r[6],
                resource_mode=r[7],
                index_key=r[8],
                attribute_key=r[9],
                attribute_value=r[10],
            )
            for r in rows
        ]
        return SearchPage(results=results, page=max(filters.page, 1), total=total)

    # --- Listings ---

    def list_lineages(self) -> list[str]:
        rows = self._conn.execute(
            "SELECT value FROM lineages WHERE deleted_at IS NULL ORDER BY value"
        ).fetchall()
        return [r[0] for r in rows]

    def list_state_stats(self, page: int = 1) -> StatePage:
        """Summarize the latest snapshot of every live lineage, one page at a time."""
        page = max(page, 1)
        total = self._conn.execute(f"SELECT COUNT(*) FROM ({_LATEST_STATES})").fetchone()[0]
        rows = self._conn.execute(
            "SELECT ls.path, ls.lineage, ls.version_id, ls.terraform_version, ls.serial, "
            "ls.last_modified, "
            "(SELECT COUNT(*) FROM resources r JOIN modules m ON m.id = r.module_id "
            " WHERE m.state_id = ls.id) "
            f"FROM ({_LATEST_STATES}) ls "
            "ORDER BY ls.path ASC, ls.lineage ASC LIMIT ? OFFSET ?",
            (self.page_size, _offset(page, self.page_size)),
        ).fetchall()
        states = [
            StateStat(
                path=r[0],
                lineage=r[1],
                version_id=r[2],
                terraform_version=r[3],
                serial=r[4],
                last_modified=r[5],
                resource_count=r[6],
            )
            for r in rows
        ]
        return StatePage(states=states, page=page, total=total)

    def list_resource_types_with_count(self) -> list[tuple[str, int]]:
        """Count resources per type across the latest snapshot of every live lineage."""
        rows = self._conn.execute(
            "SELECT r.type, COUNT(*) FROM resources r "
            "JOIN modules m ON m.id = r.module_id "
            f"JOIN ({_LATEST_STATES}) ls ON ls.id = m.state_id "
            "GROUP BY r.type ORDER BY COUNT(*) DESC, r.type ASC"
        ).fetchall()
        return [(r[0], r[1]) for r in rows]

    def list_resource_names(self) -> list[str]:
        rows = self._conn.execute(
            "SELECT DISTINCT name FROM resources ORDER BY name"
        ).fetchall()
        return [r[0] for r in rows]

    def list_attribute_keys(self, resource_type: str | None = None) -> list[str]:
        sql = (
            "SELECT DISTINCT a.key FROM attributes a "
            "JOIN instances i ON i.id = a.instance_id "
            "JOIN resources r ON r.id = i.resource_id"
        )
        params: list[Any] = []
        if resource_type:
            sql += " WHERE r.type = ?"
            params.append(resource_type)
        sql += " ORDER BY a.key"
        return [r[0] for r in self._conn.execute(sql, params).fetchall()]

    def list_terraform_versions_with_count(self) -> list[tuple[str, int]]:
        rows = self._conn.execute(
            f"SELECT terraform_version, COUNT(*) FROM ({_LATEST_STATES}) "
            "GROUP BY terraform_version ORDER BY COUNT(*) DESC, terraform_version ASC"
        ).fetchall()
        return [(r[0], r[1]) for r in rows]

    def storage_info(self) -> dict[str, Any]:
        counts = {
            table: self._conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
            for table in ("versions", "lineages", "states", "resources", "attributes")
        }
        return {"backend": "sqlite", "db_path": self.db_path, "page_size": self.page_size, **counts}


@dataclass(frozen=True)
class StorageTarget:
    """Resolved storage target from db_path and URI forms."""

    backend: str
    uri: str
    db_path: str


def parse_storage_target(
    db_path: str | None = None,
    storage_uri: str | None = None,
) -> StorageTarget:
    """Resolve the SQLite database path from a plain path or a sqlite:// URI."""
    if storage_uri is None:
        db_path = db_path or "stateboard.db"
        return StorageTarget(backend="sqlite", uri=f"sqlite:///{db_path}", db_path=db_path)

    parsed = urlparse(storage_uri)
    if parsed.scheme != "sqlite":
        raise StorageBackendError(
            "parse_storage_uri",
            f"Unsupported storage URI scheme '{parsed.scheme}' for '{storage_uri}'",
        )
    sqlite_path = parsed.path
    if parsed.netloc:
        sqlite_path = f"{parsed.netloc}{sqlite_path}"
    elif sqlite_path.startswith("//"):
        # sqlite:////abs/path -> /abs/path
        sqlite_path = sqlite_path[1:]
    elif sqlite_path.startswith("/"):
        # sqlite:///rel/path -> rel/path
        sqlite_path = sqlite_path[1:]
    if not sqlite_path:
        raise StorageBackendError("parse_storage_uri", f"Invalid sqlite URI: {storage_uri}")
    if db_path is not None and os.path.abspath(db_path) != os.path.abspath(sqlite_path):
        raise StorageBackendError(
            "parse_storage_uri",
            f"Conflicting db_path '{db_path}' and storage_uri '{storage_uri}'",
        )
    return StorageTarget(backend="sqlite", uri=storage_uri, db_path=sqlite_path)


def open_repository(
    db_path: str | None = None,
    *,
    storage_uri: str | None = None,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> Repository:
    """Open a repository from a database path or a sqlite:// URI."""
    target = parse_storage_target(db_path=db_path, storage_uri=storage_uri)
    return Repository(target.db_path, page_size=page_size)


__all__ = [
    "DEFAULT_PAGE_SIZE",
    "Repository",
    "StorageTarget",
    "ZERO_TIMESTAMP",
    "open_repository",
    "parse_storage_target",
]
