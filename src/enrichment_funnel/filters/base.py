"""
Tag Filter Policy Base.

A policy decides, after a stage's enrichment, which currently untagged
rows become permanently excluded. Rows that already carry a tag are
never evaluated, so the active set can only shrink as stages progress.

Subclasses implement _check_row(row) -> Verdict.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from typing import Any, Dict, Optional, Sequence

from enrichment_funnel.domain.entities import Row
from enrichment_funnel.domain.value_objects import FilterResult, Verdict

logger = logging.getLogger(__name__)


def parse_number(value: Any) -> Optional[float]:
    """
    Parse a numeric attribute.

    Accepts ints, floats and strings like "1,200" or "35%". Returns None
    for missing, empty or unparseable values.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return None if math.isnan(value) else float(value)
    text = str(value).strip().replace(",", "").rstrip("%").strip()
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    return None if math.isnan(number) else number


class TagFilterPolicy:
    """Base class for tag filter policies."""

    def __init__(self, name: str, filter_reason: str = "") -> None:
        """
        Initialize policy.

        Args:
            name: Unique name of the policy
            filter_reason: Human readable criterion for analytics
        """
        self._name = name
        self.filter_reason = filter_reason

    @property
    def name(self) -> str:
        return self._name

    def apply(self, rows: Sequence[Row]) -> FilterResult:
        """
        Evaluate the untagged rows.

        Args:
            rows: Rows of the store; tagged rows are ignored

        Returns:
            FilterResult with the keys to tag and their reasons
        """
        candidates = [row for row in rows if row.is_active]
        tagged: Dict[str, str] = {}
        reasons: Counter = Counter()
        buckets: Counter = Counter()

        for row in candidates:
            verdict = self._check_row(row)
            buckets[verdict.bucket] += 1
            if not verdict.passed:
                tagged[row.key] = verdict.reason
                reasons[verdict.reason] += 1

        if tagged:
            logger.debug(f"{self.name}: tagged {len(tagged)}/{len(candidates)} rows")

        return FilterResult(
            original_count=len(candidates),
            untagged_count=len(candidates) - len(tagged),
            tagged_count=len(tagged),
            filter_reason=self.filter_reason,
            tagged=tagged,
            reason_counts=dict(reasons),
            details={f"{bucket}Count": count for bucket, count in buckets.items()},
        )

    def _check_row(self, row: Row) -> Verdict:
        raise NotImplementedError


class PassThroughPolicy(TagFilterPolicy):
    """Tags nothing; reports how many rows were evaluated."""

    def __init__(self, name: str = "pass_through") -> None:
        super().__init__(name, filter_reason="No filtering")

    def _check_row(self, row: Row) -> Verdict:
        return Verdict(passed=True, bucket="passed")
