"""
Console Run Logger.

A simple event channel subscriber that prints run events to the console.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from enrichment_funnel.observability.events import EventChannel, EventType, PipelineEvent


class ConsoleRunLogger:
    """Simple console-based run logger."""

    def __init__(
        self,
        verbose: bool = True,
        printer: Callable[[str], None] = print,
    ) -> None:
        """
        Initialize console logger.

        Args:
            verbose: If True, also print progress. If False, only log lines,
                status changes and anomalies.
            printer: Output function
        """
        self._verbose = verbose
        self._printer = printer
        self._token: Optional[int] = None

    def attach(self, channel: EventChannel) -> int:
        """Subscribe to a channel; returns the subscription token."""
        self._token = channel.subscribe(self)
        return self._token

    def __call__(self, event: PipelineEvent) -> None:
        if event.event_type == EventType.PROGRESS:
            if self._verbose:
                progress = float(event.data.get("progress", 0.0))
                self._log(event, "DEBUG", f"{event.stage_id}: {progress:.0f}%")
            return
        if event.event_type == EventType.STATUS:
            self._log(
                event,
                "INFO",
                f"{event.stage_id} -> {event.data.get('status')}: {event.message}",
            )
            return
        if event.event_type == EventType.ANOMALY:
            self._log(event, "WARN", f"ANOMALY: {event.message}")
            return
        self._log(event, event.level.upper(), event.message)

    def _log(self, event: PipelineEvent, level: str, message: str) -> None:
        """Internal logging method."""
        timestamp = datetime.now().strftime("%H:%M:%S")
        corr_id = event.correlation_id[:8] if event.correlation_id else "--------"
        self._printer(f"[{timestamp}] [{corr_id}] [{level:5}] {message}")
