"""
Batched Stage Processor Base.

Subclasses implement handle_row(row) -> RowUpdate for a single row; the
base class runs it through the BatchExecutor and turns the executor's
counters into the stage analytics.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from enrichment_funnel.domain.entities import Row
from enrichment_funnel.domain.value_objects import RowUpdate, StageOutcome
from enrichment_funnel.interfaces.stage import LogCallback, ProgressCallback, RowCompleteCallback
from enrichment_funnel.pipeline.batch_executor import BatchExecutor

logger = logging.getLogger(__name__)


class BatchStageProcessor:
    """Base class for enrichment stages processed row by row."""

    #: Prefix of the <domain>Source / <domain>Error annotations
    domain = "stage"

    def __init__(
        self,
        window_size: int = 5,
        inter_window_delay: float = 0.0,
        executor: Optional[BatchExecutor] = None,
    ) -> None:
        """
        Initialize processor.

        Args:
            window_size: Rows processed concurrently
            inter_window_delay: Seconds between windows
            executor: Batch executor (default: a new BatchExecutor)
        """
        self.window_size = window_size
        self.inter_window_delay = inter_window_delay
        self.executor = executor or BatchExecutor()

    async def process(
        self,
        rows: List[Row],
        log: LogCallback,
        progress: ProgressCallback,
        on_row_complete: Optional[RowCompleteCallback] = None,
    ) -> StageOutcome:
        """Run handle_row over rows in windows and summarize."""
        result = await self.executor.run(
            rows,
            self.handle_row,
            window_size=self.window_size,
            inter_window_delay=self.inter_window_delay,
            domain=self.domain,
            log=log,
            progress=progress,
            on_row_complete=on_row_complete,
        )
        analytics = self.summarize(dict(result.analytics))
        self.log_summary(analytics, log)
        return StageOutcome(data=result.rows, analytics=analytics)

    async def handle_row(self, row: Row) -> RowUpdate:
        raise NotImplementedError

    def summarize(self, analytics: Dict[str, Any]) -> Dict[str, Any]:
        """Add stage-specific keys to the executor analytics."""
        return analytics

    def log_summary(self, analytics: Dict[str, Any], log: LogCallback) -> None:
        log(
            f"Processed {analytics.get('processed', 0)} rows "
            f"({analytics.get('errorCount', 0)} errors) in "
            f"{analytics.get('processingTimeSeconds', 0)}s"
        )
