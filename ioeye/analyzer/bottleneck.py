# ioeye/analyzer/bottleneck.py - Bottleneck classification
"""
Classifies the dominant contributor to an entity's storage latency.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from ioeye.collector.aggregator import EntitySnapshot


NS_PER_MS = 1_000_000


class BottleneckType(str, Enum):
    NONE = 'none'
    QUEUE = 'queue'
    DISK = 'disk'
    NETWORK = 'network'
    UNKNOWN = 'unknown'


@dataclass(frozen=True)
class BottleneckThresholds:
    """
    Latency thresholds in nanoseconds.
    """
    read_ns: int = 10 * NS_PER_MS
    write_ns: int = 20 * NS_PER_MS
    queue_ns: int = 5 * NS_PER_MS

    @classmethod
    def from_config(cls, config: Optional[Dict] = None) -> 'BottleneckThresholds':
        """
        Build thresholds from a millisecond-based config section
        ({'read_ms': .., 'write_ms': .., 'queue_ms': ..}).
        """
        config = config or {}
        return cls(
            read_ns=int(config.get('read_ms', 10) * NS_PER_MS),
            write_ns=int(config.get('write_ms', 20) * NS_PER_MS),
            queue_ns=int(config.get('queue_ms', 5) * NS_PER_MS),
        )


class BottleneckClassifier:
    """
    Assigns a BottleneckType from a single snapshot.

    Rules are evaluated in order and the first match wins. A component
    only counts as dominant when it is strictly greater than both others,
    so ties fall through to the threshold check.
    """

    def __init__(self, thresholds: Optional[BottleneckThresholds] = None):
        self.thresholds = thresholds or BottleneckThresholds()

    def classify(self, snapshot: EntitySnapshot) -> BottleneckType:
        queue = snapshot.queue_latency
        disk = snapshot.disk_latency
        network = snapshot.network_latency

        if queue > self.thresholds.queue_ns and queue > disk and queue > network:
            return BottleneckType.QUEUE

        if disk > queue and disk > network:
            return BottleneckType.DISK

        if network > queue and network > disk:
            return BottleneckType.NETWORK

        if (snapshot.read_latency > self.thresholds.read_ns or
                snapshot.write_latency > self.thresholds.write_ns):
            return BottleneckType.UNKNOWN

        return BottleneckType.NONE


def classify(snapshot: EntitySnapshot,
             thresholds: Optional[BottleneckThresholds] = None) -> BottleneckType:
    """Classify a snapshot with the given (or default) thresholds."""
    return BottleneckClassifier(thresholds).classify(snapshot)
