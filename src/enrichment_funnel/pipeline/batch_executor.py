"""
Batch Executor - Bounded-Concurrency Row Processing.

Runs a row handler over a list of rows in fixed-size windows. All rows of
a window run concurrently; the next window starts only after the whole
window finished, with a pause in between for rate-limited providers.

Failure Isolation:
    - An exception from one row is caught, annotated on that row as
      <domain>Source="error" / <domain>Error=<message> and counted
    - StageAbortError is not isolated: the window finishes, then the
      error propagates carrying the rows completed so far

Progress is reported after every finished row as completed/total*100.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from enrichment_funnel.domain.entities import Row
from enrichment_funnel.domain.value_objects import RowUpdate
from enrichment_funnel.interfaces.stage import LogCallback, ProgressCallback, RowCompleteCallback
from enrichment_funnel.resilience.errors import StageAbortError

logger = logging.getLogger(__name__)

RowHandler = Callable[[Row], Awaitable[RowUpdate]]

ERROR_SOURCE = "error"
SKIPPED_SOURCE = "skipped"


def error_fields(domain: str, message: str) -> Dict[str, Any]:
    """Annotation written on a row whose handler failed."""
    return {f"{domain}Source": ERROR_SOURCE, f"{domain}Error": message}


def is_error_row(row: Row, domain: str) -> bool:
    return row.attributes.get(f"{domain}Source") == ERROR_SOURCE


def success_row(row: Row, domain: str, update: RowUpdate) -> Row:
    """
    Layer a successful update over the row.

    An error annotation left by an earlier attempt is dropped, and the
    domain source defaults to the update source.
    """
    fields = {f"{domain}Source": update.source, **update.fields}
    return row.without(f"{domain}Error").merged(fields)


@dataclass
class BatchResult:
    """Rows returned by the executor, in input order, plus analytics."""

    rows: List[Row]
    analytics: Dict[str, Any] = field(default_factory=dict)


@dataclass
class _BatchCounters:
    completed: int = 0
    errors: int = 0
    skipped: int = 0
    sources: Counter = field(default_factory=Counter)
    categories: Counter = field(default_factory=Counter)
    resources: Counter = field(default_factory=Counter)

    def record(self, update: RowUpdate) -> None:
        self.sources[update.source] += 1
        if update.source == SKIPPED_SOURCE:
            self.skipped += 1
        if update.category:
            self.categories[update.category] += 1
        for name, amount in update.resources.items():
            self.resources[name] += amount


class BatchExecutor:
    """
    Executes a row handler in bounded concurrent windows.

    Usage:
        executor = BatchExecutor()
        result = await executor.run(rows, handler, window_size=5, domain="apollo")
    """

    def __init__(
        self,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """
        Initialize executor.

        Args:
            sleep: Awaitable sleep used between windows (default: asyncio.sleep)
            clock: Wall clock for start/end timestamps
        """
        self._sleep = sleep or asyncio.sleep
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def run(
        self,
        rows: List[Row],
        handler: RowHandler,
        window_size: int = 5,
        inter_window_delay: float = 0.0,
        domain: str = "stage",
        log: Optional[LogCallback] = None,
        progress: Optional[ProgressCallback] = None,
        on_row_complete: Optional[RowCompleteCallback] = None,
    ) -> BatchResult:
        """
        Run handler over rows.

        Args:
            rows: Rows to process
            handler: Coroutine function producing a RowUpdate per row
            window_size: Rows processed concurrently
            inter_window_delay: Seconds to pause between windows
            domain: Prefix of the error annotation fields
            log: Log line callback
            progress: Progress callback receiving 0-100
            on_row_complete: Called with (row, succeeded) as each row ends

        Returns:
            BatchResult with one row per input row

        Raises:
            StageAbortError: When a handler aborts the stage
        """
        if window_size < 1:
            raise ValueError(f"window_size must be >= 1, got {window_size}")

        emit = log or (lambda message: None)
        total = len(rows)
        counters = _BatchCounters()
        results: List[Row] = []
        start_time = self._clock()
        started = time.perf_counter()
        windows = 0

        async def run_one(row: Row) -> Row:
            try:
                update = await handler(row)
            except StageAbortError:
                raise
            except Exception as e:
                counters.errors += 1
                message = str(e) or e.__class__.__name__
                logger.warning(f"{domain}: row {row.key} failed: {message}")
                emit(f"Error processing {row.key}: {message}")
                result = row.merged(error_fields(domain, message))
                succeeded = False
            else:
                counters.record(update)
                result = success_row(row, domain, update)
                succeeded = True

            counters.completed += 1
            if progress is not None:
                progress(counters.completed / total * 100)
            if on_row_complete is not None:
                on_row_complete(result, succeeded)
            return result

        for window_start in range(0, total, window_size):
            if window_start > 0 and inter_window_delay > 0:
                await self._sleep(inter_window_delay)

            window = rows[window_start:window_start + window_size]
            windows += 1
            emit(
                f"Processing window {windows} "
                f"(rows {window_start + 1}-{window_start + len(window)} of {total})"
            )
            outcomes = await asyncio.gather(
                *(run_one(row) for row in window), return_exceptions=True
            )

            abort: Optional[StageAbortError] = None
            for outcome in outcomes:
                if isinstance(outcome, StageAbortError):
                    abort = abort or outcome
                elif isinstance(outcome, BaseException):
                    raise outcome
                else:
                    results.append(outcome)

            if abort is not None:
                emit(f"Stage aborted: {abort}")
                partial = {
                    "processed": counters.completed,
                    "errorCount": counters.errors,
                    "resources": dict(counters.resources),
                }
                raise StageAbortError(str(abort), completed_rows=results, analytics=partial) from abort

        end_time = self._clock()
        elapsed = time.perf_counter() - started
        analytics: Dict[str, Any] = {
            "total": total,
            "processed": counters.completed,
            "successCount": counters.completed - counters.errors,
            "errorCount": counters.errors,
            "skippedCount": counters.skipped,
            "sources": dict(counters.sources),
            "categories": dict(counters.categories),
            "resources": dict(counters.resources),
            "windows": windows,
            "startTime": start_time.isoformat(),
            "endTime": end_time.isoformat(),
            "processingTimeSeconds": round(elapsed, 3),
        }
        return BatchResult(rows=results, analytics=analytics)
