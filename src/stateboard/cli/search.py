"""stateboard search: find attributes across every indexed state."""

from __future__ import annotations

from typing import Optional

import typer

from stateboard.cli._output import print_object, print_table, to_data
from stateboard.cli._storage import open_repo_or_exit
from stateboard.filters import SearchFilters


def search_cmd(
    resource_type: Optional[str] = typer.Option(None, "--type", help="Resource type"),
    resource_name: Optional[str] = typer.Option(None, "--name", help="Resource name"),
    key: Optional[str] = typer.Option(None, "--key", help="Attribute key"),
    value: Optional[str] = typer.Option(
        None, "--value", help='Attribute value as stored, JSON encoded (e.g. \'"t2.micro"\')'
    ),
    tf_version: Optional[str] = typer.Option(None, "--tf-version", help="Terraform version"),
    lineage: Optional[str] = typer.Option(None, "--lineage", help="State lineage"),
    version_id: Optional[str] = typer.Option(None, "--version-id", help="State version"),
    page: int = typer.Option(1, "--page", min=1, help="Result page (1-based)"),
) -> None:
    """Search attributes by resource, attribute and version filters."""
    from stateboard.cli import state

    filters = SearchFilters(
        resource_type=resource_type,
        resource_name=resource_name,
        attribute_key=key,
        attribute_value=value,
        tf_version=tf_version,
        lineage=lineage,
        version_id=version_id,
        page=page,
    )

    repo = open_repo_or_exit()
    try:
        results, current_page, total = repo.search_attribute(filters)
        page_size = repo.page_size
    finally:
        repo.close()

    if state.json_output:
        print_object(
            {
                "results": to_data(results),
                "page": current_page,
                "page_size": page_size,
                "total": total,
            },
            json_mode=True,
        )
        return

    headers = ["path", "version_id", "tf_version", "address", "key", "value"]
    rows = []
    for r in results:
        prefix = f"{r.module_path}." if r.module_path else ""
        data = "data." if r.resource_mode == "data" else ""
        address = f"{prefix}{data}{r.resource_type}.{r.resource_name}{r.index_key}"
        rows.append(
            [r.path, r.version_id, r.tf_version, address, r.attribute_key, r.attribute_value]
        )
    print_table(headers, rows)
    last_page = max((total + page_size - 1) // page_size, 1)
    print(f"\nPage {current_page}/{last_page} ({total} results)")
