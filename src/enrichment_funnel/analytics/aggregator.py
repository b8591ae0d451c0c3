"""
Analytics Aggregator - Per-Stage and Run-Wide Metrics.

Accumulates row counts, billable resources and timings, and derives:
    - success rate      (attempts - errors) / attempts * 100
    - throughput        rows / elapsed minutes
    - time per row      elapsed seconds / rows
    - cost estimates    credits * credit_cost, tokens / 1000 * token_cost_per_1k
    - cache efficiency  hits / (hits + misses) * 100
    - slowest/fastest stage and bottlenecks (share of run time)

Every ratio goes through safe_divide: a zero denominator yields 0.0, so
skipped stages with zero input never produce NaN or raise.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from enrichment_funnel.config.models import AnalyticsConfig

logger = logging.getLogger(__name__)

RESOURCE_FIELDS = ("tokens", "credits", "api_calls", "cache_hits", "cache_misses")


def safe_divide(numerator: float, denominator: float) -> float:
    """Divide, returning 0.0 for a zero denominator."""
    if not denominator:
        return 0.0
    return numerator / denominator


@dataclass
class StageMetrics:
    """Counters and timings of one stage."""

    stage_id: str
    input_rows: int = 0
    output_rows: int = 0
    filtered_rows: int = 0
    error_rows: int = 0
    tokens: int = 0
    credits: int = 0
    api_calls: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    started_at: Optional[float] = None
    ended_at: Optional[float] = None
    skipped: bool = False

    @property
    def runtime_seconds(self) -> float:
        if self.started_at is None or self.ended_at is None:
            return 0.0
        return max(0.0, self.ended_at - self.started_at)

    @property
    def success_rate(self) -> float:
        return safe_divide(self.input_rows - self.error_rows, self.input_rows) * 100

    @property
    def throughput_per_minute(self) -> float:
        return safe_divide(self.input_rows, self.runtime_seconds / 60)

    @property
    def average_time_per_row(self) -> float:
        return safe_divide(self.runtime_seconds, self.input_rows)

    @property
    def cache_efficiency(self) -> float:
        return safe_divide(self.cache_hits, self.cache_hits + self.cache_misses) * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "inputRows": self.input_rows,
            "outputRows": self.output_rows,
            "filteredRows": self.filtered_rows,
            "errorRows": self.error_rows,
            "tokensUsed": self.tokens,
            "creditsUsed": self.credits,
            "apiCalls": self.api_calls,
            "cacheHits": self.cache_hits,
            "cacheMisses": self.cache_misses,
            "cacheEfficiency": round(self.cache_efficiency, 2),
            "runtime": round(self.runtime_seconds, 3),
            "averageTimePerRow": round(self.average_time_per_row, 4),
            "throughputPerMinute": round(self.throughput_per_minute, 2),
            "successRate": round(self.success_rate, 2),
            "skipped": self.skipped,
        }


class AnalyticsAggregator:
    """
    Accumulates analytics for one run.

    Usage:
        aggregator = AnalyticsAggregator(config.analytics)
        aggregator.start_run(total_rows=100)
        aggregator.start_stage("titleRelevance", input_rows=100)
        aggregator.record_resources("titleRelevance", tokens=2500)
        aggregator.end_stage("titleRelevance", output_rows=70, filtered_rows=30)
        report = aggregator.report()
    """

    def __init__(
        self,
        config: Optional[AnalyticsConfig] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        """
        Initialize aggregator.

        Args:
            config: Unit rates and bottleneck threshold
            clock: Monotonic clock in seconds (default: time.perf_counter)
        """
        self.config = config or AnalyticsConfig()
        self._clock = clock or time.perf_counter
        self._lock = threading.Lock()
        self.reset()

    def reset(self) -> None:
        """Forget everything recorded so far."""
        with self._lock:
            self._stages: Dict[str, StageMetrics] = {}
            self._order: List[str] = []
            self._total_rows = 0
            self._qualified_rows: Optional[int] = None
            self._run_started: Optional[float] = None
            self._run_ended: Optional[float] = None

    def _stage(self, stage_id: str) -> StageMetrics:
        metrics = self._stages.get(stage_id)
        if metrics is None:
            metrics = StageMetrics(stage_id=stage_id)
            self._stages[stage_id] = metrics
            self._order.append(stage_id)
        return metrics

    def start_run(self, total_rows: int) -> None:
        with self._lock:
            self._total_rows = total_rows
            self._run_started = self._clock()
            self._run_ended = None

    def start_stage(self, stage_id: str, input_rows: int) -> None:
        """Begin (or restart, on retry) timing of a stage."""
        with self._lock:
            metrics = self._stage(stage_id)
            metrics.input_rows = input_rows
            metrics.skipped = False
            metrics.started_at = self._clock()
            metrics.ended_at = None
            if self._run_started is None:
                self._run_started = metrics.started_at

    def record_resources(self, stage_id: str, **counts: int) -> None:
        """
        Add billable resource counts to a stage.

        Accepted keys: tokens, credits, api_calls, cache_hits, cache_misses.
        """
        unknown = set(counts) - set(RESOURCE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown resource counters: {sorted(unknown)}")
        with self._lock:
            metrics = self._stage(stage_id)
            for name, amount in counts.items():
                setattr(metrics, name, getattr(metrics, name) + int(amount or 0))

    def end_stage(
        self,
        stage_id: str,
        output_rows: int,
        filtered_rows: int = 0,
        error_rows: int = 0,
    ) -> StageMetrics:
        with self._lock:
            metrics = self._stage(stage_id)
            metrics.output_rows = output_rows
            metrics.filtered_rows = filtered_rows
            metrics.error_rows = error_rows
            metrics.ended_at = self._clock()
            if metrics.started_at is None:
                metrics.started_at = metrics.ended_at
            return metrics

    def record_skipped(self, stage_id: str) -> None:
        """Record a stage that received no active rows."""
        with self._lock:
            metrics = self._stage(stage_id)
            now = self._clock()
            metrics.input_rows = 0
            metrics.output_rows = 0
            metrics.started_at = now
            metrics.ended_at = now
            metrics.skipped = True

    def end_run(self, qualified_rows: int) -> None:
        with self._lock:
            self._qualified_rows = qualified_rows
            self._run_ended = self._clock()

    def stage_metrics(self, stage_id: str) -> Optional[StageMetrics]:
        with self._lock:
            return self._stages.get(stage_id)

    def report(self) -> Dict[str, Any]:
        """Build the run-wide report with every derived ratio."""
        with self._lock:
            stages = [self._stages[stage_id] for stage_id in self._order]
            total_rows = self._total_rows
            if self._run_started is None:
                runtime = 0.0
            else:
                end = self._run_ended if self._run_ended is not None else self._clock()
                runtime = max(0.0, end - self._run_started)
            qualified = self._qualified_rows

        tokens = sum(s.tokens for s in stages)
        credits = sum(s.credits for s in stages)
        api_calls = sum(s.api_calls for s in stages)
        token_cost = tokens / 1000 * self.config.token_cost_per_1k
        credit_cost = credits * self.config.credit_cost

        return {
            "pipeline": {
                "totalRows": total_rows,
                "qualifiedRows": qualified if qualified is not None else 0,
                "filteredRows": sum(s.filtered_rows for s in stages),
                "errorRows": sum(s.error_rows for s in stages),
                "totalRuntime": round(runtime, 3),
                "averageTimePerRow": round(safe_divide(runtime, total_rows), 4),
                "throughputPerMinute": round(safe_divide(total_rows, runtime / 60), 2),
                "qualificationRate": round(
                    safe_divide(qualified or 0, total_rows) * 100, 2
                ),
            },
            "steps": {s.stage_id: s.to_dict() for s in stages},
            "resources": {
                "totalTokensUsed": tokens,
                "totalCreditsUsed": credits,
                "totalApiCalls": api_calls,
                "tokenCostEstimate": round(token_cost, 6),
                "creditCostEstimate": round(credit_cost, 6),
                "totalCostEstimate": round(token_cost + credit_cost, 6),
                "averageTokensPerRow": round(safe_divide(tokens, total_rows), 2),
                "averageCreditsPerRow": round(safe_divide(credits, total_rows), 4),
            },
            "performance": self._performance(stages),
        }

    def _performance(self, stages: List[StageMetrics]) -> Dict[str, Any]:
        timed = [s for s in stages if not s.skipped and s.ended_at is not None]
        if not timed:
            return {"slowestStep": None, "fastestStep": None, "bottlenecks": []}

        slowest = max(timed, key=lambda s: s.runtime_seconds)
        fastest = min(timed, key=lambda s: s.runtime_seconds)
        total = sum(s.runtime_seconds for s in timed)
        bottlenecks = []
        for s in timed:
            share = safe_divide(s.runtime_seconds, total) * 100
            if share > self.config.bottleneck_share_pct:
                bottlenecks.append(
                    {
                        "step": s.stage_id,
                        "runtime": round(s.runtime_seconds, 3),
                        "percentage": round(share, 2),
                    }
                )
        return {
            "slowestStep": {"name": slowest.stage_id, "runtime": round(slowest.runtime_seconds, 3)},
            "fastestStep": {"name": fastest.stage_id, "runtime": round(fastest.runtime_seconds, 3)},
            "bottlenecks": bottlenecks,
        }
