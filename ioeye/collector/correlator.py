# ioeye/collector/correlator.py - Start/completion event correlation
"""
Pairs I/O start events with their completion events.
Each matched pair becomes one CompletedOperation.
"""

from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, Hashable, Optional, Tuple
import threading
import time
import logging

from ioeye.collector.event_handler import CompletedOperation, RawIOEvent


@dataclass
class PendingIO:
    """
    A start event waiting for its completion.
    """
    event: RawIOEvent
    received_ns: int


class EventCorrelator:
    """
    Correlates start and completion signals into completed operations.

    Pending starts are keyed by (layer, key). A completion with no pending
    start is dropped, and starts that never complete are expired after
    `horizon_seconds`. Loss is only visible through the counters.
    """

    def __init__(self, horizon_seconds: float = 30.0, max_pending: int = 10240,
                 resolver: Optional[Callable[[RawIOEvent], Optional[str]]] = None):
        """
        Initialize the correlator.

        Args:
            horizon_seconds: Age after which an unmatched start is dropped
            max_pending: Maximum number of pending starts kept at once
            resolver: Optional fallback mapping an event to an entity name
        """
        self.horizon_ns = int(horizon_seconds * 1_000_000_000)
        self.max_pending = max_pending
        self.resolver = resolver

        # Insertion order doubles as age order for eviction
        self.pending: 'OrderedDict[Tuple[str, Hashable], PendingIO]' = OrderedDict()

        self.completed_count = 0
        self.unmatched_count = 0
        self.expired_count = 0
        self.evicted_count = 0
        self.invalid_count = 0

        self._lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def process(self, event: RawIOEvent) -> Optional[CompletedOperation]:
        """
        Feed one raw event into the correlator.

        Args:
            event: Start or end event

        Returns:
            CompletedOperation when an end event matched a pending start
        """
        if event.is_start:
            self.on_start(event)
            return None
        return self.on_complete(event)

    def on_start(self, event: RawIOEvent):
        """
        Record a pending start. A repeated key replaces the older start.
        """
        pending_key = (event.layer, event.key)

        with self._lock:
            self.pending.pop(pending_key, None)
            self.pending[pending_key] = PendingIO(event=event, received_ns=event.timestamp_ns)

            while len(self.pending) > self.max_pending:
                self.pending.popitem(last=False)
                self.evicted_count += 1

    def on_complete(self, event: RawIOEvent) -> Optional[CompletedOperation]:
        """
        Match a completion against its pending start.

        Args:
            event: End event

        Returns:
            CompletedOperation, or None if no start was pending
        """
        pending_key = (event.layer, event.key)

        with self._lock:
            pending = self.pending.pop(pending_key, None)

            if pending is None:
                self.unmatched_count += 1
                self.logger.debug(f"Dropped completion without start: {pending_key}")
                return None

            start = pending.event
            duration_ns = event.timestamp_ns - start.timestamp_ns

            if duration_ns < 0:
                self.invalid_count += 1
                self.logger.debug(f"Dropped operation with negative duration: {pending_key}")
                return None

            self.completed_count += 1

        return CompletedOperation(
            entity=self._resolve_entity(start, event),
            op=start.op,
            duration_ns=duration_ns,
            bytes=event.bytes or start.bytes,
            timestamp_ns=event.timestamp_ns,
            layer=start.layer,
            pid=start.pid,
            comm=start.comm or event.comm,
        )

    def _resolve_entity(self, start: RawIOEvent, end: RawIOEvent) -> Optional[str]:
        if start.entity:
            return start.entity
        if end.entity:
            return end.entity
        if self.resolver:
            return self.resolver(start)
        return None

    def expire(self, now_ns: Optional[int] = None) -> int:
        """
        Drop pending starts older than the horizon.

        Args:
            now_ns: Current time in the events' clock (defaults to monotonic)

        Returns:
            Number of pending starts dropped
        """
        if now_ns is None:
            now_ns = time.monotonic_ns()

        deadline = now_ns - self.horizon_ns

        with self._lock:
            stale = [key for key, pending in self.pending.items()
                     if pending.received_ns < deadline]

            for key in stale:
                del self.pending[key]

            self.expired_count += len(stale)

        if stale:
            self.logger.debug(f"Expired {len(stale)} pending I/O starts")

        return len(stale)

    def reset(self):
        """
        Abandon all pending starts.
        """
        with self._lock:
            self.pending.clear()

    def get_stats(self) -> Dict:
        """
        Get correlator statistics.

        Returns:
            Dictionary with correlator statistics
        """
        with self._lock:
            return {
                'pending': len(self.pending),
                'completed': self.completed_count,
                'unmatched': self.unmatched_count,
                'expired': self.expired_count,
                'evicted': self.evicted_count,
                'invalid': self.invalid_count,
            }
