"""
Observability Manager - Structured Logging and Metrics.

Provides:
    - Structured JSON logging via structlog
    - Correlation ID propagation
    - Metrics recording
    - A subscriber that mirrors the pipeline event channel

Design Notes:
    - Thread-safe correlation ID storage
    - Every event is also kept in memory for inspection
"""

from __future__ import annotations

import logging
import threading
import uuid
from contextvars import ContextVar
from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog

from enrichment_funnel.observability.events import EventChannel, EventType, PipelineEvent

# Context variable for correlation ID (thread-safe)
_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)


def get_correlation_id() -> Optional[str]:
    """Get current correlation ID from context."""
    return _correlation_id.get()


def set_correlation_id(correlation_id: str) -> None:
    """Set correlation ID in context."""
    _correlation_id.set(correlation_id)


class ObservabilityManager:
    """
    Unified observability: structured logging and metrics.

    Attach it to an EventChannel to get one structured log entry per
    pipeline event.
    """

    def __init__(
        self,
        service_name: str = "enrichment_funnel",
        use_json: bool = True,
        log_level: int = logging.INFO,
    ) -> None:
        """
        Initialize observability manager.

        Args:
            service_name: Service name for log entries
            use_json: Use JSON output instead of the console renderer
            log_level: Logging level
        """
        self.service_name = service_name
        self.use_json = use_json
        self.log_level = log_level
        self._metrics: Dict[str, List[Dict[str, Any]]] = {}
        self._events: List[Dict[str, Any]] = []
        self._lock = threading.Lock()
        self._subscription: Optional[int] = None
        self._channel: Optional[EventChannel] = None

        self._configure_structlog()
        self._logger = structlog.get_logger(service_name)

    def _configure_structlog(self) -> None:
        """Configure structlog for structured logging."""
        processors = [
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
        ]

        if self.use_json:
            processors.append(structlog.processors.JSONRenderer())
        else:
            processors.append(structlog.dev.ConsoleRenderer())

        structlog.configure(
            processors=processors,
            wrapper_class=structlog.make_filtering_bound_logger(self.log_level),
            context_class=dict,
            logger_factory=structlog.PrintLoggerFactory(),
            cache_logger_on_first_use=True,
        )

    def set_correlation_id(self, correlation_id: str) -> None:
        """
        Set correlation ID for current context.

        Args:
            correlation_id: Unique ID of the run
        """
        set_correlation_id(correlation_id)
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(correlation_id=correlation_id)

    def generate_correlation_id(self) -> str:
        """Generate and set a new correlation ID."""
        correlation_id = str(uuid.uuid4())
        self.set_correlation_id(correlation_id)
        return correlation_id

    def attach(self, channel: EventChannel) -> None:
        """Subscribe to a pipeline event channel."""
        self.detach()
        self._channel = channel
        self._subscription = channel.subscribe(self.handle_event)

    def detach(self) -> None:
        """Unsubscribe from the current channel, if any."""
        if self._channel is not None and self._subscription is not None:
            self._channel.unsubscribe(self._subscription)
        self._channel = None
        self._subscription = None

    def handle_event(self, event: PipelineEvent) -> None:
        """Translate a pipeline event into a structured log entry."""
        if event.correlation_id and event.correlation_id != get_correlation_id():
            self.set_correlation_id(event.correlation_id)

        data = {key: value for key, value in event.data.items() if key != "level"}
        if event.stage_id:
            data["stage_id"] = event.stage_id

        if event.event_type == EventType.PROGRESS:
            self.record_metric("stage_progress_pct", float(data.get("progress", 0.0)),
                               tags={"stage": event.stage_id or ""})
            return
        if event.event_type == EventType.STATUS and "duration_seconds" in data:
            self.record_metric("stage_duration_seconds", float(data["duration_seconds"]),
                               tags={"stage": event.stage_id or ""}, metric_type="histogram")

        self.log_event(event.event_type.value, data, level=event.level)

    def log_event(
        self,
        event_type: str,
        data: Optional[Dict[str, Any]] = None,
        level: str = "info",
    ) -> None:
        """
        Log a structured event.

        Args:
            event_type: Type of event (e.g., "log", "status", "anomaly")
            data: Additional event data
            level: Log level (debug, info, warning, error)
        """
        event_data = {
            "event_type": event_type,
            "timestamp": datetime.now().isoformat(),
            "correlation_id": get_correlation_id(),
            **(data or {}),
        }

        with self._lock:
            self._events.append(event_data)

        log_method = getattr(self._logger, level.lower(), self._logger.info)
        log_method(event_type, **{k: v for k, v in event_data.items() if k != "event_type"})

    def log_anomaly(
        self,
        message: str,
        severity: str,
        context: Optional[Dict] = None,
    ) -> None:
        """Log an anomaly found by a health check."""
        level = "warning" if severity.upper() == "WARNING" else "error"
        self.log_event(
            "anomaly",
            {
                "message": message,
                "severity": severity,
                **(context or {}),
            },
            level=level,
        )

    def record_metric(
        self,
        name: str,
        value: float,
        tags: Optional[Dict[str, str]] = None,
        metric_type: str = "gauge",
    ) -> None:
        """
        Record a metric value.

        Args:
            name: Metric name
            value: Metric value
            tags: Additional tags/labels
            metric_type: Type (gauge, counter, histogram)
        """
        metric_entry = {
            "timestamp": datetime.now().isoformat(),
            "value": value,
            "tags": tags or {},
            "type": metric_type,
            "correlation_id": get_correlation_id(),
        }

        with self._lock:
            if name not in self._metrics:
                self._metrics[name] = []
            self._metrics[name].append(metric_entry)

    def get_metrics(self) -> Dict[str, List[Dict[str, Any]]]:
        """Get all recorded metrics."""
        with self._lock:
            return dict(self._metrics)

    def get_events(self) -> List[Dict[str, Any]]:
        """Get all recorded events."""
        with self._lock:
            return list(self._events)

    def clear(self) -> None:
        """Clear all recorded metrics and events."""
        with self._lock:
            self._metrics.clear()
            self._events.clear()
