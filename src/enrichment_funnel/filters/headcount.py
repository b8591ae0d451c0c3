"""
Headcount Range Policy.

Pure filter on company size. Rows whose employee count falls outside
[min_employees, max_employees] are tagged "Too Small: N employees" or
"Too Large: N employees". Rows without a usable count pass and are
counted as noData.
"""

from __future__ import annotations

from typing import Sequence

from enrichment_funnel.config.models import HeadcountFilterConfig
from enrichment_funnel.domain.entities import Row
from enrichment_funnel.domain.value_objects import Verdict
from enrichment_funnel.filters.base import TagFilterPolicy, parse_number

HEADCOUNT_FIELDS: Sequence[str] = (
    "organization.estimated_num_employees",
    "estimated_num_employees",
    "employee_count",
)


class HeadcountRangePolicy(TagFilterPolicy):
    """Filter rows by organization employee count."""

    def __init__(
        self,
        config: HeadcountFilterConfig,
        fields: Sequence[str] = HEADCOUNT_FIELDS,
    ) -> None:
        if config.min_employees > config.max_employees:
            raise ValueError(
                f"min_employees ({config.min_employees}) exceeds "
                f"max_employees ({config.max_employees})"
            )
        self.config = config
        self.fields = tuple(fields)
        super().__init__(
            "headcount_range",
            filter_reason=(
                f"Employees outside {config.min_employees}-{config.max_employees}"
            ),
        )

    def _headcount(self, row: Row):
        for field in self.fields:
            value = parse_number(row.get(field))
            if value is not None:
                return int(value)
        return None

    def _check_row(self, row: Row) -> Verdict:
        headcount = self._headcount(row)
        if headcount is None:
            return Verdict(passed=True, bucket="noData")
        if headcount < self.config.min_employees:
            return Verdict(False, "tooSmall", f"Too Small: {headcount} employees")
        if headcount > self.config.max_employees:
            return Verdict(False, "tooLarge", f"Too Large: {headcount} employees")
        return Verdict(passed=True, bucket="inRange")
