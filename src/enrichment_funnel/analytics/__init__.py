"""
Analytics Package - Run and Stage Metrics.

    - AnalyticsAggregator: counters, timings and derived ratios
    - StageMetrics: per-stage counters
    - safe_divide: zero-guarded division used for every ratio
"""

from enrichment_funnel.analytics.aggregator import AnalyticsAggregator, StageMetrics, safe_divide

__all__ = ["AnalyticsAggregator", "StageMetrics", "safe_divide"]
