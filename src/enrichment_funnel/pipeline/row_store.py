"""
Row Store - In-Memory Dataset Addressed by Identity.

The RowStore holds every row of a run in input order. Rows are replaced
by key when a stage returns them; rows a stage does not return are left
untouched. Tagged rows are never removed.

Design Notes:
    - Keys are fixed at load time (resolve_identity, else positional)
    - Tags are write-once: a merge never clears or replaces a tag
    - A <domain>Error annotation is dropped once the same domain reports
      a non-error <domain>Source
    - Single writer (the orchestrator), so no locking
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from enrichment_funnel.domain.entities import Row
from enrichment_funnel.domain.identity import resolve_identity
from enrichment_funnel.pipeline.batch_executor import ERROR_SOURCE

logger = logging.getLogger(__name__)

TAG_FIELD = "tag"
ERROR_SUFFIX = "Error"


def _resolved_errors(current: Mapping[str, Any], incoming: Mapping[str, Any]) -> List[str]:
    """Error annotations in current that incoming supersedes with a successful source."""
    resolved = []
    for name in current:
        if not name.endswith(ERROR_SUFFIX) or name in incoming:
            continue
        source = incoming.get(f"{name[:-len(ERROR_SUFFIX)]}Source")
        if source is not None and source != ERROR_SOURCE:
            resolved.append(name)
    return resolved


def _assign_keys(records: List[Mapping[str, Any]]) -> List[str]:
    """Derive unique keys, suffixing duplicates with #2, #3, ..."""
    keys: List[str] = []
    seen: Dict[str, int] = {}
    for index, record in enumerate(records):
        base = resolve_identity(record) or f"row-{index}"
        count = seen.get(base, 0) + 1
        seen[base] = count
        keys.append(base if count == 1 else f"{base}#{count}")
    return keys


class RowStore:
    """
    Ordered collection of rows for one run.

    Usage:
        store = RowStore.from_records(records)
        subset = store.active_rows()
        store.merge(processed_rows)
    """

    def __init__(self, rows: Optional[Iterable[Row]] = None) -> None:
        self._rows: Dict[str, Row] = {}
        for row in rows or []:
            if row.key in self._rows:
                raise ValueError(f"Duplicate row key: {row.key}")
            self._rows[row.key] = row

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> RowStore:
        """
        Build a store from raw records.

        A "tag" value already present on a record is kept.
        """
        materialized = [dict(record) for record in records]
        keys = _assign_keys(materialized)
        rows = []
        for key, record in zip(keys, materialized):
            tag = record.pop(TAG_FIELD, "") or ""
            rows.append(Row(key=key, tag=str(tag), attributes=record))
        return cls(rows)

    @classmethod
    def from_snapshot(cls, records: Iterable[Mapping[str, Any]]) -> RowStore:
        """Rebuild a store from to_records() output."""
        return cls(Row.model_validate(record) for record in records)

    def to_records(self) -> List[Dict[str, Any]]:
        """Serializable form used for persistence."""
        return [row.model_dump(mode="json") for row in self._rows.values()]

    @property
    def rows(self) -> List[Row]:
        return list(self._rows.values())

    def __len__(self) -> int:
        return len(self._rows)

    def __contains__(self, key: object) -> bool:
        return key in self._rows

    def get(self, key: str) -> Optional[Row]:
        return self._rows.get(key)

    def active_rows(self) -> List[Row]:
        """Rows with an empty tag, in input order."""
        return [row for row in self._rows.values() if row.is_active]

    def tagged_rows(self) -> List[Row]:
        return [row for row in self._rows.values() if not row.is_active]

    @property
    def active_count(self) -> int:
        return sum(1 for row in self._rows.values() if row.is_active)

    @property
    def tagged_count(self) -> int:
        return len(self._rows) - self.active_count

    def merge(self, rows: Iterable[Row]) -> int:
        """
        Replace rows by key, layering returned attributes over stored ones.

        Args:
            rows: Rows returned by a stage

        Returns:
            Number of rows merged
        """
        merged = 0
        for incoming in rows:
            current = self._rows.get(incoming.key)
            if current is None:
                logger.debug(f"Ignoring row with unknown key: {incoming.key}")
                continue
            tag = current.tag or incoming.tag
            base = current.without(*_resolved_errors(current.attributes, incoming.attributes))
            self._rows[incoming.key] = Row(
                key=current.key,
                tag=tag,
                attributes={**base.attributes, **incoming.attributes},
            )
            merged += 1
        return merged

    def apply_tags(self, tags: Mapping[str, str]) -> int:
        """
        Tag rows by key.

        Rows that already carry a tag keep it.

        Returns:
            Number of rows newly tagged
        """
        applied = 0
        for key, reason in tags.items():
            current = self._rows.get(key)
            if current is None or not current.is_active:
                continue
            self._rows[key] = current.tagged(reason)
            applied += 1
        return applied
