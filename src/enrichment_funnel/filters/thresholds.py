"""
Threshold Policies.

Numeric policies over a single computed statistic:
    - PercentageThresholdPolicy: tags rows above a percentage,
      e.g. "Too Many Indians: 34%"
    - MinimumScorePolicy: tags rows below a minimum score,
      e.g. "Low Company Relevance: Score 2/5"

Rows where the statistic is missing pass and are counted as noData.
"""

from __future__ import annotations

from enrichment_funnel.domain.entities import Row
from enrichment_funnel.domain.value_objects import Verdict
from enrichment_funnel.filters.base import TagFilterPolicy, parse_number


class PercentageThresholdPolicy(TagFilterPolicy):
    """Tag rows whose percentage exceeds the threshold."""

    def __init__(self, field: str, threshold_pct: float, label: str) -> None:
        self.field = field
        self.threshold_pct = threshold_pct
        self.label = label
        super().__init__(
            f"{field}_threshold",
            filter_reason=f"{label} share > {threshold_pct:g}%",
        )

    def _check_row(self, row: Row) -> Verdict:
        value = parse_number(row.get(self.field))
        if value is None:
            return Verdict(passed=True, bucket="noData")
        if value > self.threshold_pct:
            return Verdict(
                passed=False,
                bucket="aboveThreshold",
                reason=f"Too Many {self.label}: {round(value)}%",
            )
        return Verdict(passed=True, bucket="belowThreshold")


class MinimumScorePolicy(TagFilterPolicy):
    """Tag rows whose score is below the minimum."""

    def __init__(
        self,
        field: str,
        minimum: float,
        label: str,
        max_score: int = 5,
    ) -> None:
        self.field = field
        self.minimum = minimum
        self.label = label
        self.max_score = max_score
        super().__init__(
            f"{field}_minimum",
            filter_reason=f"{label} score < {minimum:g}",
        )

    def _check_row(self, row: Row) -> Verdict:
        value = parse_number(row.get(self.field))
        if value is None:
            return Verdict(passed=True, bucket="noData")
        if value < self.minimum:
            return Verdict(
                passed=False,
                bucket="belowMinimum",
                reason=f"Low {self.label}: Score {value:g}/{self.max_score}",
            )
        return Verdict(passed=True, bucket="atOrAboveMinimum")
