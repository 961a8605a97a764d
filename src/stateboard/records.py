"""Read-side records returned by the repository."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import NamedTuple

from stateboard.normalize import Attribute


@dataclass
class InstanceRecord:
    index_key: str
    attributes: list[Attribute] = field(default_factory=list)


@dataclass
class ResourceRecord:
    type: str
    name: str
    mode: str
    instances: list[InstanceRecord] = field(default_factory=list)

    @property
    def address(self) -> str:
        prefix = "data." if self.mode == "data" else ""
        return f"{prefix}{self.type}.{self.name}"


@dataclass
class ModuleRecord:
    path: str
    resources: list[ResourceRecord] = field(default_factory=list)


@dataclass
class StateRecord:
    """One ingested snapshot with its module/resource/instance/attribute tree."""

    id: int
    path: str
    lineage: str
    version_id: str
    last_modified: str
    terraform_version: str
    serial: int
    created_at: str
    modules: list[ModuleRecord] = field(default_factory=list)


@dataclass(frozen=True)
class LineageActivity:
    path: str
    version_id: str
    last_modified: str
    serial: int


@dataclass(frozen=True)
class SearchResult:
    path: str
    version_id: str
    tf_version: str
    lineage: str
    module_path: str
    resource_type: str
    resource_name: str
    resource_mode: str
    index_key: str
    attribute_key: str
    attribute_value: str


@dataclass(frozen=True)
class StateStat:
    """Latest snapshot of one lineage, summarized for listings."""

    path: str
    lineage: str
    version_id: str
    terraform_version: str
    serial: int
    last_modified: str
    resource_count: int


class SearchPage(NamedTuple):
    results: list[SearchResult]
    page: int
    total: int


class StatePage(NamedTuple):
    states: list[StateStat]
    page: int
    total: int
