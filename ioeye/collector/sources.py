# ioeye/collector/sources.py - I/O event sources
"""
Event sources yield RawIOEvent objects lazily.

The correlator and aggregator only depend on this interface, so they can be
driven by the kernel tracer or by a synthetic sequence of events.
"""

from abc import ABC, abstractmethod
from collections import deque
from typing import Iterable, Iterator, Optional, Sequence
import threading
import logging

from ioeye.collector.event_handler import EventHandler, RawIOEvent


class IOEventSource(ABC):
    """
    Contract for anything that produces raw I/O events.
    """

    def __init__(self):
        self._stopped = threading.Event()
        self.logger = logging.getLogger(__name__)

    @property
    def running(self) -> bool:
        return not self._stopped.is_set()

    @abstractmethod
    def subscribe(self, kinds: Optional[Sequence[str]] = None) -> Iterator[RawIOEvent]:
        """
        Yield raw events until the source is exhausted or stopped.

        Args:
            kinds: Operation kinds to keep ('read', 'write'); None keeps all
        """

    def stop(self):
        """
        Ask the source to stop yielding events.
        """
        self._stopped.set()

    @staticmethod
    def _wanted(event: RawIOEvent, kinds: Optional[Sequence[str]]) -> bool:
        return kinds is None or event.op in kinds


class ReplayEventSource(IOEventSource):
    """
    Replays a fixed sequence of events (tests and offline analysis).
    """

    def __init__(self, events: Iterable[RawIOEvent]):
        super().__init__()
        self.events = list(events)

    def subscribe(self, kinds: Optional[Sequence[str]] = None) -> Iterator[RawIOEvent]:
        for event in self.events:
            if not self.running:
                return
            if self._wanted(event, kinds):
                yield event


class TracerEventSource(IOEventSource):
    """
    Streams events from the eBPF tracer's perf buffer.
    """

    def __init__(self, tracer, handler: Optional[EventHandler] = None,
                 poll_timeout_ms: int = 100):
        """
        Args:
            tracer: Initialized IOTracer
            handler: EventHandler converting raw records (created if omitted)
            poll_timeout_ms: Perf buffer poll timeout, bounds shutdown latency
        """
        super().__init__()
        self.tracer = tracer
        self.handler = handler or EventHandler()
        self.poll_timeout_ms = poll_timeout_ms
        self._buffer = deque()

        self.handler.register_callback(self._buffer.append)
        self.tracer.register_event_handler('io', self.handler.handle_io_event)

    def subscribe(self, kinds: Optional[Sequence[str]] = None) -> Iterator[RawIOEvent]:
        self.tracer.open()

        while self.running:
            self.tracer.poll(timeout=self.poll_timeout_ms)

            while self._buffer:
                event = self._buffer.popleft()
                if self._wanted(event, kinds):
                    yield event

                if not self.running:
                    break

    def stop(self):
        super().stop()
        self.tracer.stop()
