"""
Event Channel - Decouples the Engine from Log/Progress Consumers.

The orchestrator publishes log lines, progress values, status changes and
anomalies; any number of subscribers (console, structlog, UI bridge)
receive them synchronously in subscription order.

Design Notes:
    - A failing subscriber is logged and skipped, never breaks the engine
    - Subscribers may filter by event type
    - Thread-safe subscription management
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Kinds of pipeline events."""

    LOG = "log"
    PROGRESS = "progress"
    STATUS = "status"
    ANOMALY = "anomaly"


@dataclass(frozen=True)
class PipelineEvent:
    """One published event."""

    event_type: EventType
    data: Dict[str, Any] = field(default_factory=dict)
    stage_id: Optional[str] = None
    correlation_id: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def message(self) -> str:
        return str(self.data.get("message", ""))

    @property
    def level(self) -> str:
        return str(self.data.get("level", "info"))


Subscriber = Callable[[PipelineEvent], None]


class EventChannel:
    """
    Publish/subscribe channel for pipeline events.

    Usage:
        channel = EventChannel()
        token = channel.subscribe(print, event_types=[EventType.LOG])
        channel.publish(PipelineEvent(EventType.LOG, {"message": "hi"}))
        channel.unsubscribe(token)
    """

    def __init__(self) -> None:
        self._subscribers: Dict[int, Tuple[Subscriber, Optional[FrozenSet[EventType]]]] = {}
        self._tokens = itertools.count(1)
        self._lock = threading.Lock()

    def subscribe(
        self,
        callback: Subscriber,
        event_types: Optional[Iterable[EventType]] = None,
    ) -> int:
        """
        Register a subscriber.

        Args:
            callback: Called with each matching event
            event_types: Restrict to these types (default: all)

        Returns:
            Token for unsubscribe()
        """
        types = frozenset(event_types) if event_types is not None else None
        with self._lock:
            token = next(self._tokens)
            self._subscribers[token] = (callback, types)
        return token

    def unsubscribe(self, token: int) -> bool:
        """Remove a subscriber; False when the token is unknown."""
        with self._lock:
            return self._subscribers.pop(token, None) is not None

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event: PipelineEvent) -> None:
        """Deliver an event to every matching subscriber."""
        with self._lock:
            subscribers: List[Tuple[Subscriber, Optional[FrozenSet[EventType]]]] = list(
                self._subscribers.values()
            )
        for callback, types in subscribers:
            if types is not None and event.event_type not in types:
                continue
            try:
                callback(event)
            except Exception as e:
                logger.warning(f"Event subscriber {callback!r} failed: {e}")
