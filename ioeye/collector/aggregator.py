# ioeye/collector/aggregator.py - Per-entity counter aggregation
"""
Aggregates completed operations into per-entity counters and converts
them into point-in-time rate snapshots once per collection interval.
"""

from dataclasses import asdict, dataclass
from typing import Callable, Dict, Iterable, List, Optional
import threading
import time
import logging

from ioeye.collector.event_handler import (
    CompletedOperation, LAYER_BLOCK, LAYER_NETWORK, LAYER_QUEUE, LAYER_VFS, OP_READ,
)


# Elapsed times below this are treated as a clock anomaly
MIN_ELAPSED_SECONDS = 0.001


@dataclass(frozen=True)
class EntitySnapshot:
    """
    One point-in-time measurement bundle for an entity.

    Latencies are in nanoseconds, IOPS in operations per second,
    throughput in bytes per second, timestamp in epoch seconds.
    """
    entity: str
    namespace: str = ""
    read_latency: int = 0
    write_latency: int = 0
    read_iops: float = 0.0
    write_iops: float = 0.0
    read_throughput: float = 0.0
    write_throughput: float = 0.0
    queue_latency: int = 0
    disk_latency: int = 0
    network_latency: int = 0
    timestamp: float = 0.0

    @property
    def total_latency(self) -> int:
        """Combined read and write latency (ns)"""
        return self.read_latency + self.write_latency

    @property
    def total_iops(self) -> float:
        return self.read_iops + self.write_iops

    @property
    def total_throughput(self) -> float:
        return self.read_throughput + self.write_throughput

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class EntityCounters:
    """
    Rolling counters for one entity between two collections.
    """
    read_ops: int = 0
    write_ops: int = 0
    read_bytes: int = 0
    write_bytes: int = 0
    read_latency_total_ns: int = 0
    write_latency_total_ns: int = 0

    # Most recently observed latencies, kept across intervals
    last_read_latency: int = 0
    last_write_latency: int = 0
    last_queue_latency: int = 0
    last_disk_latency: int = 0
    last_network_latency: int = 0

    def reset_deltas(self):
        self.read_ops = 0
        self.write_ops = 0
        self.read_bytes = 0
        self.write_bytes = 0
        self.read_latency_total_ns = 0
        self.write_latency_total_ns = 0

    def reset_latencies(self):
        self.last_read_latency = 0
        self.last_write_latency = 0
        self.last_queue_latency = 0
        self.last_disk_latency = 0
        self.last_network_latency = 0


class CounterAggregator:
    """
    Accumulates completed operations per entity and produces snapshots.

    File-system (vfs) operations drive the read/write counters and
    latencies; block, queue and network operations only update the
    matching latency component.
    """

    def __init__(self, namespace: str = "", carry_forward_latency: bool = True,
                 idle_eviction_cycles: int = 0,
                 clock: Callable[[], float] = time.time):
        """
        Initialize the aggregator.

        Args:
            namespace: Namespace stamped on every snapshot
            carry_forward_latency: Keep the last latencies for idle entities
                (False resets them to zero)
            idle_eviction_cycles: Forget an unlisted entity after this many
                collections without operations (0 keeps entities forever)
            clock: Wall-clock source in seconds
        """
        self.namespace = namespace
        self.carry_forward_latency = carry_forward_latency
        self.idle_eviction_cycles = idle_eviction_cycles
        self.clock = clock

        self.counters: Dict[str, EntityCounters] = {}
        # Entities touched since the last collection
        self.active_entities = set()
        # Consecutive collections without operations, per entity
        self.idle_cycles: Dict[str, int] = {}
        # Entities dropped by the most recent collection
        self.evicted_entities: List[str] = []

        self.last_collect_time = self.clock()
        self.total_operations = 0
        self.unattributed_operations = 0

        self._lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def add_operation(self, op: CompletedOperation):
        """
        Add a completed operation to its entity's counters.

        Args:
            op: CompletedOperation produced by the correlator
        """
        if not op.entity:
            with self._lock:
                self.unattributed_operations += 1
            return

        with self._lock:
            counters = self.counters.get(op.entity)
            if counters is None:
                counters = EntityCounters()
                self.counters[op.entity] = counters

            if op.layer == LAYER_VFS:
                if op.op == OP_READ:
                    counters.read_ops += 1
                    counters.read_bytes += op.bytes
                    counters.read_latency_total_ns += op.duration_ns
                    counters.last_read_latency = op.duration_ns
                else:
                    counters.write_ops += 1
                    counters.write_bytes += op.bytes
                    counters.write_latency_total_ns += op.duration_ns
                    counters.last_write_latency = op.duration_ns
            elif op.layer == LAYER_BLOCK:
                counters.last_disk_latency = op.duration_ns
            elif op.layer == LAYER_QUEUE:
                counters.last_queue_latency = op.duration_ns
            elif op.layer == LAYER_NETWORK:
                counters.last_network_latency = op.duration_ns

            self.active_entities.add(op.entity)
            self.total_operations += 1

    def collect(self, entities: Optional[Iterable[str]] = None,
                now: Optional[float] = None) -> Dict[str, EntitySnapshot]:
        """
        Convert the counters into one snapshot per entity and reset deltas.

        Args:
            entities: Entities to report (default: every tracked entity).
                Listed entities without counters get an all-zero snapshot.
            now: Collection time in epoch seconds (defaults to the clock)

        Returns:
            Dictionary mapping entity names to EntitySnapshot
        """
        if now is None:
            now = self.clock()

        with self._lock:
            elapsed = now - self.last_collect_time
            if elapsed < MIN_ELAPSED_SECONDS:
                elapsed = 1.0

            evicted = []
            if entities is None:
                if self.idle_eviction_cycles > 0:
                    evicted = self._evict_idle()
                names = list(self.counters.keys())
            else:
                names = list(dict.fromkeys(entities))
                listed = set(names)
                for name in list(self.counters.keys()):
                    if name not in listed:
                        del self.counters[name]
                        self.idle_cycles.pop(name, None)

            snapshots = {}
            for name in names:
                counters = self.counters.get(name)
                if counters is None:
                    counters = EntityCounters()
                    self.counters[name] = counters

                if not self.carry_forward_latency and name not in self.active_entities:
                    counters.reset_latencies()

                snapshots[name] = self._build_snapshot(name, counters, elapsed, now)
                counters.reset_deltas()

            self.active_entities.clear()
            self.last_collect_time = now
            self.evicted_entities = evicted

        if evicted:
            self.logger.info(f"Evicted {len(evicted)} idle entities: {', '.join(evicted)}")
        self.logger.debug(f"Collected {len(snapshots)} snapshots over {elapsed:.3f}s")
        return snapshots

    def _evict_idle(self) -> List[str]:
        evicted = []
        for name in list(self.counters.keys()):
            if name in self.active_entities:
                self.idle_cycles[name] = 0
                continue

            self.idle_cycles[name] = self.idle_cycles.get(name, 0) + 1
            if self.idle_cycles[name] >= self.idle_eviction_cycles:
                del self.counters[name]
                del self.idle_cycles[name]
                evicted.append(name)
        return evicted

    def _build_snapshot(self, name: str, counters: EntityCounters,
                        elapsed: float, now: float) -> EntitySnapshot:
        return EntitySnapshot(
            entity=name,
            namespace=self.namespace,
            read_latency=counters.last_read_latency,
            write_latency=counters.last_write_latency,
            read_iops=counters.read_ops / elapsed,
            write_iops=counters.write_ops / elapsed,
            read_throughput=counters.read_bytes / elapsed,
            write_throughput=counters.write_bytes / elapsed,
            queue_latency=counters.last_queue_latency,
            disk_latency=counters.last_disk_latency,
            network_latency=counters.last_network_latency,
            timestamp=now,
        )

    def get_stats(self) -> Dict:
        """
        Get aggregator statistics.

        Returns:
            Dictionary with aggregator statistics
        """
        with self._lock:
            return {
                'tracked_entities': len(self.counters),
                'active_entities': len(self.active_entities),
                'total_operations': self.total_operations,
                'unattributed_operations': self.unattributed_operations,
            }

    def reset(self):
        """
        Drop all counters.
        """
        with self._lock:
            self.counters.clear()
            self.active_entities.clear()
            self.idle_cycles.clear()
            self.evicted_entities = []
            self.total_operations = 0
            self.unattributed_operations = 0
        self.logger.info("Aggregator reset")
