"""
Observability Package - Events, Structured Logging, Health.

This package provides:
    - EventChannel: publish/subscribe of log, progress, status and
      anomaly events
    - ObservabilityManager: structlog output with correlation IDs
    - HealthMonitor: RAM, error-rate and empty-funnel checks
    - RunSnapshotManager: persisted run state for resume

Design Principles:
    - All dependencies optional
    - Correlation ID propagation for end-to-end tracing
"""

from enrichment_funnel.observability.events import EventChannel, EventType, PipelineEvent
from enrichment_funnel.observability.health_monitor import HealthMonitor, HealthStatus
from enrichment_funnel.observability.observability_manager import ObservabilityManager
from enrichment_funnel.observability.snapshot_manager import RunSnapshot, RunSnapshotManager

__all__ = [
    "EventChannel",
    "EventType",
    "PipelineEvent",
    "ObservabilityManager",
    "HealthMonitor",
    "HealthStatus",
    "RunSnapshot",
    "RunSnapshotManager",
]
