"""Pure helpers that turn decoded state pieces into index rows."""

from __future__ import annotations

import json
from dataclasses import dataclass

from stateboard.statefile import InstanceKey, IntKey, NoKey, ResourceInstanceObject, StringKey


@dataclass(frozen=True)
class Attribute:
    key: str
    value: str


def render_index_key(key: InstanceKey) -> str:
    """Render an instance key as its address suffix: '', '[0]' or '["name"]'."""
    if isinstance(key, NoKey):
        return ""
    elif isinstance(key, IntKey):
        return f"[{key.value}]"
    elif isinstance(key, StringKey):
        return f"[{json.dumps(key.value, ensure_ascii=False)}]"
    raise TypeError(f"Unknown instance key type: {type(key).__name__}")


def _compact_json(value: object) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def flatten_attributes(obj: ResourceInstanceObject | None) -> list[Attribute]:
    """Flatten an instance object's attributes into key/value pairs.

    Every value is compact JSON. A non-empty legacy flat map wins over the
    JSON attributes; its string values are encoded as JSON strings. Otherwise
    each top-level field of the JSON object becomes one attribute. Text that
    is not valid JSON, or that decodes to anything but an object, yields no
    attributes.
    """
    if obj is None:
        return []
    if obj.attrs_flat:
        return [Attribute(key=k, value=_compact_json(v)) for k, v in obj.attrs_flat.items()]
    if not obj.attrs_json:
        return []

    try:
        decoded = json.loads(obj.attrs_json)
    except (UnicodeDecodeError, json.JSONDecodeError):
        return []
    if not isinstance(decoded, dict):
        return []
    return [Attribute(key=k, value=_compact_json(v)) for k, v in decoded.items()]
