"""
Filters Package - Tag Filter Policies.

Each policy owns a predicate over a processed row plus an exclusion
reason template parameterized by the triggering value.

Policies:
    - TitleRelevancePolicy: Founder/Relevant pass, others tagged
    - HeadcountRangePolicy: company size window
    - PercentageThresholdPolicy: regional headcount share
    - MinimumScorePolicy: classifier scores
    - PassThroughPolicy: tags nothing

Design Principles:
    - Only untagged rows are evaluated
    - filtered + passed == rows evaluated
    - Configuration injected via constructor
"""

from enrichment_funnel.filters.base import PassThroughPolicy, TagFilterPolicy, parse_number
from enrichment_funnel.filters.headcount import HeadcountRangePolicy
from enrichment_funnel.filters.thresholds import MinimumScorePolicy, PercentageThresholdPolicy
from enrichment_funnel.filters.title_relevance import TitleRelevancePolicy

__all__ = [
    "TagFilterPolicy",
    "PassThroughPolicy",
    "TitleRelevancePolicy",
    "HeadcountRangePolicy",
    "PercentageThresholdPolicy",
    "MinimumScorePolicy",
    "parse_number",
]
