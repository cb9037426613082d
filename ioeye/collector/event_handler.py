# ioeye/collector/event_handler.py - Event processing and handling
"""
Event handler for processing I/O events from the kernel.
Converts raw perf buffer records into structured start/end events.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Hashable, List, Optional
import logging


PHASE_START = 'start'
PHASE_END = 'end'

OP_READ = 'read'
OP_WRITE = 'write'

# Where in the I/O stack an event was observed
LAYER_VFS = 'vfs'
LAYER_BLOCK = 'block'
LAYER_QUEUE = 'queue'
LAYER_NETWORK = 'network'

LAYERS = (LAYER_VFS, LAYER_BLOCK, LAYER_QUEUE, LAYER_NETWORK)

# Numeric codes used by the eBPF program (see ebpf/io_tracer.c)
_PHASES = {0: PHASE_START, 1: PHASE_END}
_OPS = {0: OP_READ, 1: OP_WRITE}
_LAYERS = {0: LAYER_VFS, 1: LAYER_BLOCK, 2: LAYER_QUEUE, 3: LAYER_NETWORK}


@dataclass
class RawIOEvent:
    """
    One half of an I/O operation as reported by a probe.

    The start phase carries the start timestamp, the end phase carries the
    completion timestamp. Both share the same correlation key.
    """
    phase: str
    key: Hashable
    op: str
    timestamp_ns: int
    entity: Optional[str] = None
    bytes: int = 0
    pid: int = 0
    tid: int = 0
    comm: str = ""
    layer: str = LAYER_VFS

    @property
    def is_start(self) -> bool:
        return self.phase == PHASE_START


@dataclass(frozen=True)
class CompletedOperation:
    """
    A start/end pair collapsed into a single latency measurement.
    """
    entity: Optional[str]
    op: str
    duration_ns: int
    bytes: int
    timestamp_ns: int
    layer: str = LAYER_VFS
    pid: int = 0
    comm: str = ""


class EventHandler:
    """
    Handles incoming eBPF records and routes them to registered callbacks.
    """

    def __init__(self):
        """
        Initialize the event handler.
        """
        self.event_callbacks: List[Callable] = []
        self.event_count = 0
        self.error_count = 0

        self.logger = logging.getLogger(__name__)

    def register_callback(self, callback: Callable):
        """
        Register a callback function to be called for each event.

        Args:
            callback: Function that takes a RawIOEvent as parameter
        """
        self.event_callbacks.append(callback)

    def handle_io_event(self, raw_event) -> Optional[RawIOEvent]:
        """
        Process a raw I/O record from eBPF.

        Args:
            raw_event: Raw event data from BCC (struct io_event_t)

        Returns:
            Processed RawIOEvent object or None if processing failed
        """
        try:
            event = RawIOEvent(
                phase=_PHASES[raw_event.phase],
                key=(raw_event.key, raw_event.site),
                op=_OPS[raw_event.operation],
                timestamp_ns=raw_event.ts,
                bytes=raw_event.bytes,
                pid=raw_event.pid,
                tid=raw_event.tid,
                comm=raw_event.comm.decode('utf-8', 'replace').rstrip('\x00'),
                layer=_LAYERS[raw_event.layer],
            )
        except (AttributeError, KeyError, UnicodeDecodeError) as e:
            self.logger.error(f"Error processing I/O event: {e}")
            self.error_count += 1
            return None

        self.event_count += 1

        for callback in self.event_callbacks:
            callback(event)

        return event

    def get_stats(self) -> Dict:
        """
        Get handler statistics.

        Returns:
            Dictionary with event processing statistics
        """
        return {
            'total_events': self.event_count,
            'errors': self.error_count,
            'callbacks_registered': len(self.event_callbacks)
        }
