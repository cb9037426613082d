# ioeye/analyzer/storage_analyzer.py - Storage performance analysis
"""
Keeps per-entity snapshot history and the analysis derived from it:
bottleneck classification, anomaly flags, latency trend and rankings.
"""

from collections import Counter
from typing import Dict, Iterable, List, Mapping, Optional, Tuple
import threading
import logging

from ioeye.analyzer.anomaly import AnomalyDetector
from ioeye.analyzer.bottleneck import BottleneckClassifier, BottleneckThresholds, BottleneckType
from ioeye.analyzer.history import DEFAULT_CAPACITY, HistoryStore
from ioeye.analyzer.trend import (
    LatencyTrend, RANK_BY_IOPS, RANK_BY_LATENCY, RANK_BY_THROUGHPUT, latency_trend, top_n,
)
from ioeye.collector.aggregator import EntitySnapshot
from ioeye.exceptions import InsufficientDataError, OutOfOrderSnapshotError


DEFAULT_TREND_WINDOW_SECONDS = 300.0


class StorageAnalyzer:
    """
    Analyzes storage snapshots per entity.

    The aggregation cycle is the only writer: add_snapshots() appends a
    whole batch and publishes the matching classifications under one
    lock, so a reader never sees a bottleneck or anomaly flag computed
    from a different snapshot than the one reported as latest.
    Every query returns copies.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY,
                 thresholds: Optional[BottleneckThresholds] = None,
                 detector: Optional[AnomalyDetector] = None,
                 trend_window: float = DEFAULT_TREND_WINDOW_SECONDS):
        """
        Initialize the storage analyzer.

        Args:
            capacity: Snapshots retained per entity
            thresholds: Bottleneck thresholds (defaults: 10/20/5 ms)
            detector: Anomaly detector (defaults: threshold 2.0, 10 snapshots)
            trend_window: Default trend lookback in seconds
        """
        self.history = HistoryStore(capacity)
        self.classifier = BottleneckClassifier(thresholds)
        self.detector = detector or AnomalyDetector()
        self.trend_window = trend_window

        self.bottlenecks: Dict[str, BottleneckType] = {}
        self.anomalies: Dict[str, bool] = {}
        self.cycles = 0

        self._lock = threading.RLock()
        self.logger = logging.getLogger(__name__)

    def add_snapshots(self, snapshots: Mapping[str, EntitySnapshot]) -> int:
        """
        Add one aggregation cycle's snapshots and refresh the analysis.

        Args:
            snapshots: Dictionary mapping entity names to snapshots

        Returns:
            Number of snapshots accepted
        """
        accepted = 0

        with self._lock:
            bottlenecks = dict(self.bottlenecks)
            anomalies = dict(self.anomalies)

            for entity, snapshot in snapshots.items():
                try:
                    self.history.append(entity, snapshot)
                except OutOfOrderSnapshotError as e:
                    self.logger.warning(f"Skipping snapshot: {e}")
                    continue

                bottlenecks[entity] = self.classifier.classify(snapshot)
                anomalies[entity] = self.detector.detect(self.history.all(entity))
                accepted += 1

                if anomalies[entity]:
                    self.logger.warning(
                        f"Latency anomaly detected for {entity} "
                        f"(read {snapshot.read_latency}ns, write {snapshot.write_latency}ns)"
                    )

            self.bottlenecks = bottlenecks
            self.anomalies = anomalies
            self.cycles += 1

        return accepted

    def forget(self, entities: Iterable[str]) -> int:
        """
        Drop the history and analysis of entities that are no longer tracked.

        Returns:
            Number of entities removed
        """
        removed = 0

        with self._lock:
            bottlenecks = dict(self.bottlenecks)
            anomalies = dict(self.anomalies)

            for entity in entities:
                bottlenecks.pop(entity, None)
                anomalies.pop(entity, None)
                if self.history.remove(entity):
                    removed += 1

            self.bottlenecks = bottlenecks
            self.anomalies = anomalies

        return removed

    def get_snapshot(self, entity: str) -> Optional[EntitySnapshot]:
        """
        Latest snapshot for an entity, or None if it has none yet.
        """
        with self._lock:
            return self.history.latest(entity)

    def get_all_snapshots(self) -> Dict[str, EntitySnapshot]:
        """
        Latest snapshot of every entity.
        """
        with self._lock:
            result = {}
            for entity in self.history.entities():
                latest = self.history.latest(entity)
                if latest is not None:
                    result[entity] = latest
            return result

    def get_history(self, entity: str) -> Tuple[EntitySnapshot, ...]:
        with self._lock:
            return self.history.all(entity)

    def get_bottleneck(self, entity: str) -> BottleneckType:
        """
        Bottleneck of the entity's latest snapshot; UNKNOWN if unseen.
        """
        with self._lock:
            return self.bottlenecks.get(entity, BottleneckType.UNKNOWN)

    def has_anomaly(self, entity: str) -> bool:
        """
        Whether the entity's latest snapshot was flagged; False if unseen.
        """
        with self._lock:
            return self.anomalies.get(entity, False)

    def get_analysis(self, entity: str) -> Optional[Tuple[EntitySnapshot, BottleneckType, bool]]:
        """
        Latest snapshot together with its bottleneck and anomaly flag,
        read consistently. None if the entity is unseen.
        """
        with self._lock:
            latest = self.history.latest(entity)
            if latest is None:
                return None
            return latest, self.bottlenecks[entity], self.anomalies[entity]

    def get_trend(self, entity: str, window: Optional[float] = None,
                  now: Optional[float] = None) -> LatencyTrend:
        """
        Latency trend of an entity over a lookback window.

        Args:
            entity: Entity name
            window: Lookback in seconds (defaults to trend_window)
            now: Reference time in epoch seconds

        Raises:
            InsufficientDataError: fewer than two snapshots
        """
        history = self.get_history(entity)
        if len(history) < 2:
            raise InsufficientDataError(entity, len(history), 2)

        if window is None:
            window = self.trend_window

        return latency_trend(history, window, now=now)

    def get_top_n(self, n: int, by: str = RANK_BY_LATENCY) -> List[EntitySnapshot]:
        """
        Entities' latest snapshots ranked by combined latency, IOPS or throughput.
        """
        return top_n(self.get_all_snapshots().values(), n, by=by)

    def get_top_slow(self, n: int) -> List[EntitySnapshot]:
        return self.get_top_n(n, by=RANK_BY_LATENCY)

    def get_top_iops(self, n: int) -> List[EntitySnapshot]:
        return self.get_top_n(n, by=RANK_BY_IOPS)

    def get_top_throughput(self, n: int) -> List[EntitySnapshot]:
        return self.get_top_n(n, by=RANK_BY_THROUGHPUT)

    def get_health(self) -> Dict:
        """
        Summary of the analysis state.

        Returns:
            Dictionary with entity, anomaly and bottleneck counts
        """
        with self._lock:
            bottleneck_counts = Counter(b.value for b in self.bottlenecks.values())
            return {
                'entities': len(self.history),
                'cycles': self.cycles,
                'anomalies': sorted(e for e, flagged in self.anomalies.items() if flagged),
                'bottlenecks': dict(bottleneck_counts),
            }
