"""
Run State - Mutable State of One Pipeline Run.

PipelineRun is owned exclusively by the orchestrator. Callers only ever
see the immutable PipelineSnapshot built from it.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from enrichment_funnel.domain.entities import LogEntry, StageState, StageStatus


@dataclass
class PipelineRun:
    """Run flags, per-stage status and analytics."""

    stage_ids: List[str]
    correlation_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    current_stage_index: int = 0
    is_processing: bool = False
    is_cancelling: bool = False
    is_cancelled: bool = False
    processing_complete: bool = False
    error: Optional[str] = None
    progress: float = 0.0
    logs: List[LogEntry] = field(default_factory=list)
    stage_status: Dict[str, StageState] = field(default_factory=dict)
    analytics: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    filter_analytics: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    completed_keys: Dict[str, Set[str]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for stage_id in self.stage_ids:
            self.stage_status.setdefault(stage_id, StageState())

    @property
    def current_stage_id(self) -> Optional[str]:
        if 0 <= self.current_stage_index < len(self.stage_ids):
            return self.stage_ids[self.current_stage_index]
        return None

    def set_status(
        self,
        stage_id: str,
        status: StageStatus,
        message: str = "",
        analytics: Optional[Dict[str, Any]] = None,
    ) -> None:
        previous = self.stage_status.get(stage_id, StageState())
        self.stage_status[stage_id] = StageState(
            status=status,
            message=message,
            analytics=analytics if analytics is not None else previous.analytics,
        )

    def status_of(self, stage_id: str) -> StageStatus:
        return self.stage_status.get(stage_id, StageState()).status

    def set_progress(self, value: float) -> float:
        """Clamp progress to 0-100."""
        self.progress = max(0.0, min(100.0, float(value)))
        return self.progress

    def mark_completed(self, stage_id: str, key: str) -> None:
        self.completed_keys.setdefault(stage_id, set()).add(key)

    def completed_for(self, stage_id: str) -> Set[str]:
        return self.completed_keys.get(stage_id, set())

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form used for persistence."""
        return {
            "stage_ids": list(self.stage_ids),
            "correlation_id": self.correlation_id,
            "current_stage_index": self.current_stage_index,
            "is_processing": self.is_processing,
            "is_cancelling": self.is_cancelling,
            "is_cancelled": self.is_cancelled,
            "processing_complete": self.processing_complete,
            "error": self.error,
            "progress": self.progress,
            "completed_keys": {
                stage_id: sorted(keys) for stage_id, keys in self.completed_keys.items()
            },
        }

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        logs: Optional[List[Dict[str, Any]]] = None,
        stage_status: Optional[Dict[str, Dict[str, Any]]] = None,
        analytics: Optional[Dict[str, Dict[str, Any]]] = None,
        filter_analytics: Optional[Dict[str, Dict[str, Any]]] = None,
    ) -> PipelineRun:
        """Rebuild a run from its persisted parts."""
        return cls(
            stage_ids=list(data["stage_ids"]),
            correlation_id=data.get("correlation_id") or str(uuid.uuid4()),
            current_stage_index=int(data.get("current_stage_index", 0)),
            is_processing=bool(data.get("is_processing", False)),
            is_cancelling=bool(data.get("is_cancelling", False)),
            is_cancelled=bool(data.get("is_cancelled", False)),
            processing_complete=bool(data.get("processing_complete", False)),
            error=data.get("error"),
            progress=float(data.get("progress", 0.0)),
            logs=[LogEntry.model_validate(entry) for entry in logs or []],
            stage_status={
                stage_id: StageState.model_validate(state)
                for stage_id, state in (stage_status or {}).items()
            },
            analytics=dict(analytics or {}),
            filter_analytics=dict(filter_analytics or {}),
            completed_keys={
                stage_id: set(keys)
                for stage_id, keys in data.get("completed_keys", {}).items()
            },
        )
