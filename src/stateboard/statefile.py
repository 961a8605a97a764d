"""Decoded Terraform state objects and the JSON (format version 4) reader."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Union

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from stateboard.errors import StateDecodeError

# --- Instance keys ---


@dataclass(frozen=True)
class NoKey:
    """Key of a resource without count or for_each."""


@dataclass(frozen=True)
class IntKey:
    """Key of a count-based resource instance."""

    value: int


@dataclass(frozen=True)
class StringKey:
    """Key of a for_each-based resource instance."""

    value: str


NO_KEY = NoKey()

InstanceKey = Union[NoKey, IntKey, StringKey]


# --- State tree ---


@dataclass
class ResourceInstanceObject:
    """Undecoded attribute payload of one resource instance object.

    ``attrs_flat`` is the legacy flat map written by Terraform 0.11 and older;
    ``attrs_json`` is the JSON object text written by newer versions.
    """

    attrs_json: str | bytes | None = None
    attrs_flat: dict[str, str] | None = None
    status: str = "ready"
    schema_version: int = 0


@dataclass
class ResourceInstance:
    current: ResourceInstanceObject | None = None
    deposed: dict[str, ResourceInstanceObject] = field(default_factory=dict)


@dataclass
class Resource:
    mode: str  # "managed" or "data"
    type: str
    name: str
    provider: str = ""
    instances: dict[InstanceKey, ResourceInstance] = field(default_factory=dict)


@dataclass
class Module:
    path: str  # "" for the root module
    resources: list[Resource] = field(default_factory=list)


@dataclass
class State:
    modules: list[Module] = field(default_factory=list)


@dataclass
class StateFile:
    """A decoded state snapshot as handed over by a provider."""

    lineage: str
    serial: int
    terraform_version: str
    state: State = field(default_factory=State)


# --- JSON document validation ---


class _RawInstance(BaseModel):
    model_config = ConfigDict(extra="ignore")

    index_key: int | str | None = None
    status: str | None = None
    deposed: str | None = None
    schema_version: int = 0
    attributes: Any = None
    attributes_flat: dict[str, str] | None = None


class _RawResource(BaseModel):
    model_config = ConfigDict(extra="ignore")

    module: str = ""
    mode: str
    type: str
    name: str
    provider: str = ""
    instances: list[_RawInstance] = []


class _RawStateV4(BaseModel):
    model_config = ConfigDict(extra="ignore")

    version: int
    terraform_version: str
    serial: int
    lineage: str
    resources: list[_RawResource] = []


def _instance_key(raw: int | str | None) -> InstanceKey:
    if raw is None:
        return NO_KEY
    if isinstance(raw, int):
        return IntKey(raw)
    return StringKey(raw)


def _instance_object(raw: _RawInstance) -> ResourceInstanceObject:
    attrs_json = None
    if raw.attributes is not None:
        attrs_json = json.dumps(raw.attributes, separators=(",", ":"), ensure_ascii=False)
    return ResourceInstanceObject(
        attrs_json=attrs_json,
        attrs_flat=raw.attributes_flat,
        status="tainted" if raw.status == "tainted" else "ready",
        schema_version=raw.schema_version,
    )


def read_state(data: str | bytes) -> StateFile:
    """Decode a Terraform JSON state document (format version 4)."""
    try:
        doc = json.loads(data)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise StateDecodeError(f"State is not valid JSON: {e}") from e
    if not isinstance(doc, dict):
        raise StateDecodeError("State document must be a JSON object")
    if doc.get("version") != 4:
        raise StateDecodeError(f"Unsupported state format version: {doc.get('version')!r}")
    try:
        raw = _RawStateV4.model_validate(doc)
    except PydanticValidationError as e:
        raise StateDecodeError(f"Invalid state document: {e}") from e

    modules: dict[str, Module] = {}
    for raw_res in raw.resources:
        module = modules.setdefault(raw_res.module, Module(path=raw_res.module))
        resource = Resource(
            mode="data" if raw_res.mode == "data" else "managed",
            type=raw_res.type,
            name=raw_res.name,
            provider=raw_res.provider,
        )
        for raw_inst in raw_res.instances:
            key = _instance_key(raw_inst.index_key)
            instance = resource.instances.setdefault(key, ResourceInstance())
            if raw_inst.deposed:
                instance.deposed[raw_inst.deposed] = _instance_object(raw_inst)
            else:
                instance.current = _instance_object(raw_inst)
        module.resources.append(resource)

    return StateFile(
        lineage=raw.lineage,
        serial=raw.serial,
        terraform_version=raw.terraform_version,
        state=State(modules=list(modules.values())),
    )
