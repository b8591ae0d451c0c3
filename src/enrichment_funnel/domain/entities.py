"""
Core Domain Entities.

This module defines the fundamental entities of the enrichment funnel.
These entities represent the core concepts that the business logic operates on.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from enrichment_funnel.domain.identity import lookup_path


class TagOverwriteError(ValueError):
    """Raised when a stage tries to replace an existing exclusion tag."""


class Row(BaseModel):
    """One record flowing through the pipeline."""

    key: str = Field(..., description="Stable identity fixed at load time")
    tag: str = Field(default="", description="Exclusion reason, empty = active")
    attributes: Dict[str, Any] = Field(
        default_factory=dict, description="Open attribute map filled by stages"
    )

    model_config = {"frozen": True}

    def __hash__(self) -> int:
        return hash(self.key)

    @property
    def is_active(self) -> bool:
        """A row is active while it carries no tag."""
        return not self.tag

    def get(self, path: str, default: Any = None) -> Any:
        """Look up an attribute by (possibly dotted) path."""
        return lookup_path(self.attributes, path, default)

    def merged(self, fields: Dict[str, Any]) -> Row:
        """Return a copy with the given fields layered over the attributes."""
        if not fields:
            return self
        return self.model_copy(update={"attributes": {**self.attributes, **fields}})

    def without(self, *names: str) -> Row:
        """Return a copy lacking the named attributes."""
        if not any(name in self.attributes for name in names):
            return self
        attributes = {k: v for k, v in self.attributes.items() if k not in names}
        return self.model_copy(update={"attributes": attributes})

    def tagged(self, reason: str) -> Row:
        """
        Return a copy carrying the exclusion tag.

        Tags are write-once: re-applying the same reason is a no-op,
        a different reason raises TagOverwriteError.
        """
        if not reason:
            raise ValueError("Tag reason must be a non-empty string")
        if self.tag == reason:
            return self
        if self.tag:
            raise TagOverwriteError(
                f"Row {self.key} already tagged '{self.tag}', refusing '{reason}'"
            )
        return self.model_copy(update={"tag": reason})


class StageKind(str, Enum):
    """Whether a stage calls a processor or only applies a predicate."""

    ENRICHMENT = "enrichment"
    FILTER = "filter"


class StageStatus(str, Enum):
    """Lifecycle of a stage within one run."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETE = "complete"
    ERROR = "error"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Stage:
    """
    An ordered, uniquely identified pipeline step.

    Enrichment stages carry a processor; pure filter stages carry only a
    policy. Either kind may attach a tag filter policy.
    """

    stage_id: str
    name: str
    description: str = ""
    kind: StageKind = StageKind.ENRICHMENT
    processor: Any = None
    policy: Any = None
    writes: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if self.kind == StageKind.ENRICHMENT and self.processor is None:
            raise ValueError(f"Enrichment stage '{self.stage_id}' needs a processor")
        if self.kind == StageKind.FILTER and self.policy is None:
            raise ValueError(f"Filter stage '{self.stage_id}' needs a policy")


class StageState(BaseModel):
    """Status, message and analytics of one stage."""

    status: StageStatus = StageStatus.PENDING
    message: str = ""
    analytics: Optional[Dict[str, Any]] = None


class LogEntry(BaseModel):
    """One line of the append-only run log."""

    timestamp: datetime
    message: str
    level: str = "info"
    stage_id: Optional[str] = None

    model_config = {"frozen": True}


class StageDescriptor(BaseModel):
    """Public description of a stage in the pipeline listing."""

    stage_id: str
    name: str
    description: str
    kind: StageKind

    model_config = {"frozen": True}


class PipelineSnapshot(BaseModel):
    """Immutable view of a run handed to callers."""

    rows: List[Row] = Field(default_factory=list)
    pipeline: List[StageDescriptor] = Field(default_factory=list)
    current_stage_index: int = 0
    current_stage_id: Optional[str] = None
    is_processing: bool = False
    is_cancelling: bool = False
    is_cancelled: bool = False
    processing_complete: bool = False
    error: Optional[str] = None
    progress: float = 0.0
    logs: List[LogEntry] = Field(default_factory=list)
    stage_status: Dict[str, StageState] = Field(default_factory=dict)
    analytics: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    filter_analytics: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    run_analytics: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @property
    def active_rows(self) -> List[Row]:
        return [row for row in self.rows if row.is_active]

    @property
    def tagged_rows(self) -> List[Row]:
        return [row for row in self.rows if not row.is_active]

    def status_of(self, stage_id: str) -> StageStatus:
        state = self.stage_status.get(stage_id)
        return state.status if state else StageStatus.PENDING
