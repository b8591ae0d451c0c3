"""
Title Relevance Policy.

Keeps rows classified Founder or Relevant (case-insensitive); tags every
other row with "Irrelevant Title: <category>", using "Unknown" when the
classification is missing.
"""

from __future__ import annotations

from typing import Iterable

from enrichment_funnel.domain.entities import Row
from enrichment_funnel.domain.value_objects import Verdict
from enrichment_funnel.filters.base import TagFilterPolicy

DEFAULT_PASSING = ("Founder", "Relevant")


class TitleRelevancePolicy(TagFilterPolicy):
    """Filter rows by title relevance category."""

    def __init__(
        self,
        field: str = "titleRelevance",
        passing: Iterable[str] = DEFAULT_PASSING,
    ) -> None:
        passing = tuple(passing)
        self.field = field
        self.passing = {category.lower() for category in passing}
        super().__init__(
            "title_relevance",
            filter_reason=f"Title not in {', '.join(sorted(passing))}",
        )

    def _check_row(self, row: Row) -> Verdict:
        category = str(row.get(self.field) or "").strip()
        if category.lower() in self.passing:
            return Verdict(passed=True, bucket=category.lower())
        label = category or "Unknown"
        return Verdict(
            passed=False,
            bucket=label.lower(),
            reason=f"Irrelevant Title: {label}",
        )
