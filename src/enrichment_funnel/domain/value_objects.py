"""
Value Objects for Domain Layer.

Value objects are immutable objects that describe outcomes of stage
processing but have no conceptual identity.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from enrichment_funnel.domain.entities import Row


# =============================================================================
# Type Aliases for improved readability
# =============================================================================

# Exclusion reasons: row key -> tag
TagAssignmentsDict = Dict[str, str]

# Stage analytics payload (open schema)
AnalyticsDict = Dict[str, Any]


class FilterResult(BaseModel):
    """Result of applying a tag filter policy to the untagged rows."""

    original_count: int = Field(ge=0, description="Untagged rows evaluated")
    untagged_count: int = Field(ge=0, description="Rows that passed")
    tagged_count: int = Field(ge=0, description="Rows tagged by this policy")
    filter_reason: str = Field(default="", description="Human readable criterion")
    tagged: TagAssignmentsDict = Field(default_factory=dict)
    reason_counts: Dict[str, int] = Field(default_factory=dict)
    details: Dict[str, int] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @property
    def passed_count(self) -> int:
        return self.untagged_count

    def to_analytics(self) -> AnalyticsDict:
        """Render in the shape attached to stage analytics."""
        return {
            "originalCount": self.original_count,
            "untaggedCount": self.untagged_count,
            "taggedCount": self.tagged_count,
            "filterReason": self.filter_reason,
            "reasonCounts": dict(self.reason_counts),
            **self.details,
        }


@dataclass(frozen=True)
class Verdict:
    """Decision of a policy for a single row."""

    passed: bool
    bucket: str
    reason: str = ""


@dataclass(frozen=True)
class RowUpdate:
    """
    Fields produced for one row by a stage handler.

    Attributes:
        fields: Attributes to merge into the row
        source: Where the data came from (cache, provider, local, skipped)
        category: Optional bucket counted in the stage analytics
        resources: Billable units consumed (credits, tokens, api_calls)
    """

    fields: Dict[str, Any] = field(default_factory=dict)
    source: str = "provider"
    category: Optional[str] = None
    resources: Dict[str, int] = field(default_factory=dict)


@dataclass
class StageOutcome:
    """Rows and analytics returned by a stage processor."""

    data: List[Row]
    analytics: AnalyticsDict = field(default_factory=dict)
