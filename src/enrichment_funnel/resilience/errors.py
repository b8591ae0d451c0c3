"""
Error Taxonomy.

Severity follows where an error is absorbed:
    - Row level: any exception raised by a row handler. Isolated by the
      batch executor, annotated on the row, counted.
    - Cache level: CacheError. Logged as a warning, cache bypassed.
    - Stage level: StageAbortError or any exception escaping a processor.
      Halts the run at the stage; recoverable through retry.
    - Setup level: ConnectivityError. Raised by the stage 0 self-test.
    - Caller level: PipelineStateError for illegal operations.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class EnrichmentFunnelError(Exception):
    """Base class for all pipeline errors."""


class ConnectivityError(EnrichmentFunnelError):
    """Raised when the provider self-test fails before any stage work."""


class StageAbortError(EnrichmentFunnelError):
    """
    Raised by a row handler to abort the whole stage.

    Unlike ordinary row failures this is not isolated: the batch executor
    lets the current window finish and then propagates it. Rows finished
    before the abort are attached so the orchestrator can keep them, along
    with the counts and billable resources they consumed.
    """

    def __init__(
        self,
        message: str,
        completed_rows: Optional[List] = None,
        analytics: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.completed_rows = list(completed_rows or [])
        self.analytics = dict(analytics or {})


class CacheError(EnrichmentFunnelError):
    """Raised when the cache collaborator cannot be read or written."""


class ProviderError(EnrichmentFunnelError):
    """Raised when a provider call fails."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PipelineStateError(EnrichmentFunnelError):
    """Raised when a caller invokes an operation that the run state forbids."""
