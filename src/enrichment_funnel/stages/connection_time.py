"""
Connection Time Stage.

Formats how long ago each lead connected, from the connected_on column,
as "N years, M months, D days". Purely local, no provider involved.

Whole days are rounded up. A year is 365 days and a month 30 days; the
day part is the total modulo 30.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Sequence

from enrichment_funnel.domain.entities import Row
from enrichment_funnel.domain.value_objects import RowUpdate
from enrichment_funnel.pipeline.batch_executor import BatchExecutor
from enrichment_funnel.stages.base import BatchStageProcessor

UNKNOWN = "Unknown"

DEFAULT_DATE_FORMATS = ("%d %b %Y", "%Y-%m-%d", "%d/%m/%Y", "%m/%d/%Y")


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'' if count == 1 else 's'}"


def format_elapsed_days(diff_days: int) -> str:
    """Render a day count, e.g. 400 -> "1 year, 1 month, 10 days"."""
    years = diff_days // 365
    months = (diff_days % 365) // 30
    days = diff_days % 30

    parts = []
    if years > 0:
        parts.append(_plural(years, "year"))
    if months > 0:
        parts.append(_plural(months, "month"))
    if days > 0 or not parts:
        parts.append(_plural(days, "day"))
    return ", ".join(parts)


def parse_connected_on(value: str, formats: Sequence[str] = DEFAULT_DATE_FORMATS) -> datetime:
    """
    Parse a connection date.

    Tries each strptime format, then ISO 8601. Naive results are taken
    as UTC.

    Raises:
        ValueError: When no format matches
    """
    text = value.strip()
    parsed: Optional[datetime] = None
    for fmt in formats:
        try:
            parsed = datetime.strptime(text, fmt)
            break
        except ValueError:
            continue
    if parsed is None:
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            raise ValueError(f"Unrecognized connection date '{value}'") from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class ConnectionTimeProcessor(BatchStageProcessor):
    """Compute the elapsed time since each connection."""

    domain = "connectionTime"

    def __init__(
        self,
        date_formats: Sequence[str] = DEFAULT_DATE_FORMATS,
        clock: Optional[Callable[[], datetime]] = None,
        window_size: int = 500,
        executor: Optional[BatchExecutor] = None,
    ) -> None:
        super().__init__(window_size, 0.0, executor)
        self.date_formats = tuple(date_formats)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def handle_row(self, row: Row) -> RowUpdate:
        connected_on = str(row.get("connected_on") or "").strip()
        if not connected_on:
            return RowUpdate(
                fields={"connectionTime": UNKNOWN, "connectionTimeSource": "local"},
                source="local",
                category="unknown",
            )

        connected = parse_connected_on(connected_on, self.date_formats)
        elapsed = (self._clock() - connected).total_seconds()
        diff_days = max(0, math.ceil(elapsed / 86400))
        return RowUpdate(
            fields={
                "connectionTime": format_elapsed_days(diff_days),
                "connectionDays": diff_days,
                "connectionTimeSource": "local",
            },
            source="local",
            category="known",
        )

    def summarize(self, analytics: Dict[str, Any]) -> Dict[str, Any]:
        categories = analytics.get("categories", {})
        analytics.update(
            {
                "knownCount": categories.get("known", 0),
                "unknownCount": categories.get("unknown", 0),
            }
        )
        return analytics
