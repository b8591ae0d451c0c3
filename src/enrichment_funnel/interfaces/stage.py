"""
Stage Protocols.

A stage processor turns the active rows of a stage into enriched rows;
a tag filter policy decides which untagged rows become excluded.

Processor contract:
    - Returns only rows from its input subset
    - Raises on unrecoverable failure (the run halts at the stage)
    - Reports log lines and 0-100 progress through the callbacks
    - May report each finished row through on_row_complete so the
      orchestrator can merge it before the stage ends
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, List, Optional, Protocol, Sequence, runtime_checkable

if TYPE_CHECKING:
    from enrichment_funnel.domain.entities import Row
    from enrichment_funnel.domain.value_objects import FilterResult, StageOutcome

LogCallback = Callable[[str], None]
ProgressCallback = Callable[[float], None]
RowCompleteCallback = Callable[["Row", bool], None]


@runtime_checkable
class StageProcessorProtocol(Protocol):
    """Processor of an enrichment stage."""

    async def process(
        self,
        rows: List["Row"],
        log: LogCallback,
        progress: ProgressCallback,
        on_row_complete: Optional[RowCompleteCallback] = None,
    ) -> "StageOutcome":
        ...


@runtime_checkable
class TagFilterPolicyProtocol(Protocol):
    """Post-enrichment exclusion predicate."""

    @property
    def name(self) -> str:
        ...

    def apply(self, rows: Sequence["Row"]) -> "FilterResult":
        ...
