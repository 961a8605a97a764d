"""Search filter types for attribute search."""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Mapping

# Query-string parameter name -> SearchFilters field
_PARAM_FIELDS = {
    "type": "resource_type",
    "name": "resource_name",
    "key": "attribute_key",
    "value": "attribute_value",
    "tf_version": "tf_version",
    "lineage": "lineage",
    "versionid": "version_id",
}

# SearchFilters field -> SQL column it constrains
FILTER_COLUMNS = {
    "resource_type": "r.type",
    "resource_name": "r.name",
    "attribute_key": "a.key",
    "attribute_value": "a.value",
    "tf_version": "s.terraform_version",
    "lineage": "l.value",
    "version_id": "v.version_id",
}


@dataclass(frozen=True)
class SearchFilters:
    """Equality filters for attribute search; ``None`` or blank means unconstrained."""

    resource_type: str | None = None
    resource_name: str | None = None
    attribute_key: str | None = None
    attribute_value: str | None = None
    tf_version: str | None = None
    lineage: str | None = None
    version_id: str | None = None
    page: int = 1

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> SearchFilters:
        """Build filters from query-string style parameters.

        Values may be plain strings or lists of strings (first one wins), as
        produced by ``urllib.parse.parse_qs``. An unparsable or non-positive
        page falls back to page 1.
        """
        kwargs: dict[str, Any] = {}
        for param, field_name in _PARAM_FIELDS.items():
            value = _first(params.get(param))
            if value:
                kwargs[field_name] = value
        try:
            page = int(_first(params.get("page")) or 1)
        except ValueError:
            page = 1
        kwargs["page"] = max(page, 1)
        return cls(**kwargs)

    def active(self) -> dict[str, str]:
        """Return the non-blank filter values keyed by field name."""
        out: dict[str, str] = {}
        for f in fields(self):
            if f.name == "page":
                continue
            value = getattr(self, f.name)
            if value is not None and value != "":
                out[f.name] = value
        return out


def _first(value: Any) -> str | None:
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None:
        return None
    return str(value)


def compile_filters(filters: SearchFilters, params: list[Any]) -> str:
    """Compile search filters into a SQL predicate, appending bind values to params."""
    clauses = ["l.deleted_at IS NULL"]
    for field_name, value in filters.active().items():
        clauses.append(f"{FILTER_COLUMNS[field_name]} = ?")
        params.append(value)
    return " AND ".join(clauses)
