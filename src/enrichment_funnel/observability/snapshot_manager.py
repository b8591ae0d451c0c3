"""
Run Snapshot Manager - Persisted Run State for Resumability.

Writes the row store and run state to the persistence collaborator after
every stage transition, so a reload can continue mid-run.

Storage keys (namespace "advisor" as example):
    advisor_processed         rows
    advisor_logs              run log
    advisor_analytics         per-stage analytics
    advisor_filter_analytics  pure-filter analytics
    advisor_process_status    per-stage status
    advisor_current_step      run flags and stage index

Design Notes:
    - Save failures are logged and never halt a run
    - Loading returns None when no complete snapshot exists
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from enrichment_funnel.interfaces.storage import PersistenceProtocol
from enrichment_funnel.pipeline.row_store import RowStore
from enrichment_funnel.pipeline.run_state import PipelineRun

logger = logging.getLogger(__name__)

SNAPSHOT_PARTS = (
    "processed",
    "logs",
    "analytics",
    "filter_analytics",
    "process_status",
    "current_step",
)


@dataclass
class RunSnapshot:
    """A run restored from persistence."""

    run: PipelineRun
    store: RowStore
    saved_at: Optional[datetime] = None

    @property
    def age_seconds(self) -> float:
        """Get snapshot age in seconds."""
        if self.saved_at is None:
            return 0.0
        return (datetime.now(timezone.utc) - self.saved_at).total_seconds()


class RunSnapshotManager:
    """Saves and restores runs under a key namespace."""

    def __init__(self, persistence: PersistenceProtocol, namespace: str = "enrichment") -> None:
        """
        Initialize snapshot manager.

        Args:
            persistence: Key/value store
            namespace: Prefix of all keys written
        """
        self.persistence = persistence
        self.namespace = namespace

    def key(self, part: str) -> str:
        return f"{self.namespace}_{part}"

    def save(self, run: PipelineRun, store: RowStore) -> bool:
        """
        Persist the run.

        Returns:
            True when every part was written
        """
        current_step = run.to_dict()
        current_step["saved_at"] = datetime.now(timezone.utc).isoformat()
        parts: Dict[str, Any] = {
            "processed": store.to_records(),
            "logs": [entry.model_dump(mode="json") for entry in run.logs],
            "analytics": run.analytics,
            "filter_analytics": run.filter_analytics,
            "process_status": {
                stage_id: state.model_dump(mode="json")
                for stage_id, state in run.stage_status.items()
            },
            "current_step": current_step,
        }
        try:
            for part, value in parts.items():
                self.persistence.save(self.key(part), value)
        except Exception as e:
            logger.warning(f"Failed to persist run {run.correlation_id}: {e}")
            return False
        return True

    def load(self) -> Optional[RunSnapshot]:
        """Restore the last saved run, or None when nothing usable is stored."""
        current_step = self.persistence.load(self.key("current_step"))
        records = self.persistence.load(self.key("processed"))
        if current_step is None or records is None:
            return None

        run = PipelineRun.from_dict(
            current_step,
            logs=self.persistence.load(self.key("logs")),
            stage_status=self.persistence.load(self.key("process_status")),
            analytics=self.persistence.load(self.key("analytics")),
            filter_analytics=self.persistence.load(self.key("filter_analytics")),
        )
        saved_at = current_step.get("saved_at")
        return RunSnapshot(
            run=run,
            store=RowStore.from_snapshot(records),
            saved_at=datetime.fromisoformat(saved_at) if saved_at else None,
        )

    def clear(self) -> None:
        """Discard every stored part."""
        for part in SNAPSHOT_PARTS:
            self.persistence.remove(self.key(part))
