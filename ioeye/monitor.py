# ioeye/monitor.py - Storage monitor
"""
Runs the collection and aggregation loops and exposes the read-only
query surface.

Data flows one way: event source -> correlator -> aggregator ->
analyzer. The collector thread consumes events continuously; the
aggregation thread turns counters into snapshots every `interval`
seconds and analyzes them on the same thread.
"""

from typing import Callable, Dict, List, Optional
import threading
import logging

from ioeye.analyzer.bottleneck import BottleneckType
from ioeye.analyzer.storage_analyzer import StorageAnalyzer
from ioeye.analyzer.trend import LatencyTrend, RANK_BY_LATENCY
from ioeye.collector.aggregator import CounterAggregator, EntitySnapshot
from ioeye.collector.correlator import EventCorrelator
from ioeye.collector.event_handler import CompletedOperation, RawIOEvent
from ioeye.collector.sources import IOEventSource
from ioeye.directory import EntityDirectory
from ioeye.exceptions import DirectoryError


DEFAULT_INTERVAL_SECONDS = 10.0


class StorageMonitor:
    """
    Wires the pipeline together and owns its background threads.
    """

    def __init__(self, source: IOEventSource, correlator: EventCorrelator,
                 aggregator: CounterAggregator, analyzer: StorageAnalyzer,
                 directory: Optional[EntityDirectory] = None, namespace: str = "",
                 interval: float = DEFAULT_INTERVAL_SECONDS,
                 on_cycle: Optional[Callable[[Dict[str, EntitySnapshot], StorageAnalyzer], None]] = None):
        """
        Initialize the storage monitor.

        Args:
            source: Raw I/O event source
            correlator: Start/end event correlator
            aggregator: Per-entity counter aggregator
            analyzer: Storage analyzer receiving each cycle's snapshots
            directory: Optional directory restricting reported entities
            namespace: Namespace passed to the directory
            interval: Aggregation interval in seconds
            on_cycle: Hook called after every successful cycle (exporters)
        """
        self.source = source
        self.correlator = correlator
        self.aggregator = aggregator
        self.analyzer = analyzer
        self.directory = directory
        self.namespace = namespace
        self.interval = interval
        self.on_cycle = on_cycle

        self.completed_cycles = 0
        self.skipped_cycles = 0
        self.collector_errors = 0

        self._stop_event = threading.Event()
        # Set once the event source fails; cycles are skipped from then on
        self._collector_failed = threading.Event()
        self._threads: List[threading.Thread] = []

        self.logger = logging.getLogger(__name__)

    # Lifecycle

    def start(self):
        """
        Start the collector and aggregation threads.
        """
        if self._threads:
            raise RuntimeError("Monitor already started")

        self._stop_event.clear()
        self._collector_failed.clear()
        self._threads = [
            threading.Thread(target=self._collect_loop, name='ioeye-collector', daemon=True),
            threading.Thread(target=self._aggregate_loop, name='ioeye-aggregator', daemon=True),
        ]

        for thread in self._threads:
            thread.start()

        self.logger.info(f"Storage monitor started (interval {self.interval}s, "
                         f"namespace '{self.namespace or '*'}')")

    def stop(self, timeout: float = 5.0):
        """
        Stop both loops. Pending correlation state is abandoned.
        """
        self._stop_event.set()
        self.source.stop()

        for thread in self._threads:
            thread.join(timeout)
            if thread.is_alive():
                self.logger.warning(f"Thread {thread.name} did not stop within {timeout}s")

        self._threads = []
        self.correlator.reset()
        self.logger.info("Storage monitor stopped")

    @property
    def running(self) -> bool:
        return any(thread.is_alive() for thread in self._threads)

    # Collection

    def process_event(self, event: RawIOEvent) -> Optional[CompletedOperation]:
        """
        Correlate one raw event and aggregate the result, if any.
        """
        op = self.correlator.process(event)
        if op is not None:
            self.aggregator.add_operation(op)
        return op

    def drain(self) -> int:
        """
        Consume the source synchronously until it is exhausted or stopped.

        Returns:
            Number of raw events processed
        """
        count = 0
        for event in self.source.subscribe():
            if self._stop_event.is_set():
                break
            self.process_event(event)
            count += 1
        return count

    def _collect_loop(self):
        try:
            processed = self.drain()
            self.logger.debug(f"Event source finished after {processed} events")
        except Exception as e:
            self.collector_errors += 1
            self._collector_failed.set()
            self.logger.error(f"Event collection failed: {e}")

    # Aggregation

    def run_cycle(self, now: Optional[float] = None) -> bool:
        """
        Run one aggregation cycle: collect snapshots and analyze them.

        A directory failure or a failed event source skips the cycle;
        history and classifications from earlier cycles stay available.
        Without a working source an idle interval cannot be told apart
        from lost events, so no snapshots are produced.

        Args:
            now: Cycle time in epoch seconds (defaults to the aggregator clock)

        Returns:
            True if snapshots were produced and analyzed
        """
        if self._collector_failed.is_set():
            self.skipped_cycles += 1
            self.logger.error("Skipping aggregation cycle: event collection has failed")
            return False

        self.correlator.expire()

        try:
            entities = self.directory.list_entities(self.namespace) if self.directory else None
        except DirectoryError as e:
            self.skipped_cycles += 1
            self.logger.error(f"Skipping aggregation cycle: {e}")
            return False

        snapshots = self.aggregator.collect(entities, now=now)
        self.analyzer.add_snapshots(snapshots)
        if self.aggregator.evicted_entities:
            self.analyzer.forget(self.aggregator.evicted_entities)
        self.completed_cycles += 1

        top = self.analyzer.get_top_slow(1)
        if top:
            self.logger.info(
                f"Top slow entity: {top[0].entity} (read latency: {top[0].read_latency} ns, "
                f"write latency: {top[0].write_latency} ns)"
            )

        if self.on_cycle:
            self.on_cycle(snapshots, self.analyzer)

        return True

    def _aggregate_loop(self):
        while not self._stop_event.wait(self.interval):
            try:
                self.run_cycle()
            except Exception as e:
                self.skipped_cycles += 1
                self.logger.error(f"Aggregation cycle failed: {e}")

    # Queries

    def get_snapshot(self, entity: str) -> Optional[EntitySnapshot]:
        return self.analyzer.get_snapshot(entity)

    def get_all_snapshots(self) -> Dict[str, EntitySnapshot]:
        return self.analyzer.get_all_snapshots()

    def get_bottleneck(self, entity: str) -> BottleneckType:
        return self.analyzer.get_bottleneck(entity)

    def has_anomaly(self, entity: str) -> bool:
        return self.analyzer.has_anomaly(entity)

    def get_trend(self, entity: str, window: Optional[float] = None) -> LatencyTrend:
        return self.analyzer.get_trend(entity, window)

    def get_top_n(self, n: int, by: str = RANK_BY_LATENCY) -> List[EntitySnapshot]:
        return self.analyzer.get_top_n(n, by=by)

    def get_stats(self) -> Dict:
        """
        Pipeline statistics.
        """
        return {
            'completed_cycles': self.completed_cycles,
            'skipped_cycles': self.skipped_cycles,
            'collector_errors': self.collector_errors,
            'collector_failed': self._collector_failed.is_set(),
            'correlator': self.correlator.get_stats(),
            'aggregator': self.aggregator.get_stats(),
        }
