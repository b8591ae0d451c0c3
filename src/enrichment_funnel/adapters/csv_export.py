"""
CSV Export.

Writes rows, tagged ones included, as a flat CSV. Nested mappings are
flattened to dotted columns unless a flattened column of the same name
already exists; lists are JSON-encoded.
"""

from __future__ import annotations

import csv
import json
import logging
from pathlib import Path
from typing import IO, Any, Dict, Iterable, List, Mapping, Union

from enrichment_funnel.domain.entities import Row

logger = logging.getLogger(__name__)

LEADING_COLUMNS = [
    "first_name",
    "last_name",
    "position",
    "company",
    "linkedin_url",
    "connected_on",
    "tag",
]


def _flatten(prefix: str, value: Mapping[str, Any], out: Dict[str, Any]) -> None:
    for name, item in value.items():
        column = f"{prefix}.{name}"
        if isinstance(item, Mapping):
            _flatten(column, item, out)
        else:
            out.setdefault(column, item)


def _cell(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return json.dumps(value, default=str)
    if value is None:
        return ""
    return value


def flatten_row(row: Row) -> Dict[str, Any]:
    """Flatten a row into a single-level column mapping."""
    flat: Dict[str, Any] = {}
    nested = []
    for name, value in row.attributes.items():
        if isinstance(value, Mapping):
            nested.append((name, value))
        else:
            flat[name] = value
    for name, value in nested:
        _flatten(name, value, flat)
    flat["tag"] = row.tag
    return {name: _cell(value) for name, value in flat.items()}


def _columns(flat_rows: List[Dict[str, Any]]) -> List[str]:
    seen = set()
    columns = []
    for column in LEADING_COLUMNS:
        if any(column in flat for flat in flat_rows):
            columns.append(column)
            seen.add(column)
    for flat in flat_rows:
        for column in flat:
            if column not in seen:
                columns.append(column)
                seen.add(column)
    return columns


def export_csv(rows: Iterable[Row], destination: Union[str, Path, IO[str]]) -> int:
    """
    Write rows to a CSV file or text buffer.

    Args:
        rows: Rows to export, in order
        destination: File path or writable text stream

    Returns:
        Number of data rows written
    """
    flat_rows = [flatten_row(row) for row in rows]
    columns = _columns(flat_rows)

    def write(stream: IO[str]) -> None:
        writer = csv.DictWriter(stream, fieldnames=columns, restval="")
        writer.writeheader()
        writer.writerows(flat_rows)

    if isinstance(destination, (str, Path)):
        with open(destination, "w", newline="", encoding="utf-8") as handle:
            write(handle)
        logger.info(f"Exported {len(flat_rows)} rows to {destination}")
    else:
        write(destination)
    return len(flat_rows)
