# ioeye/analyzer/anomaly.py - Latency anomaly detection
"""
Flags upward latency spikes by comparing the latest snapshot of an
entity against the statistics of its retained history.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Tuple
import statistics
import math
import logging

from ioeye.collector.aggregator import EntitySnapshot


DEFAULT_THRESHOLD = 2.0
DEFAULT_MIN_HISTORY = 10


class ZScoreDenominator(str, Enum):
    """
    What the deviation from the mean is divided by.

    VARIANCE reproduces the historical formula (x - mean) / variance,
    whose scale depends on the latency unit. STDDEV is the textbook
    z-score (x - mean) / sqrt(variance).
    """
    VARIANCE = 'variance'
    STDDEV = 'stddev'


@dataclass(frozen=True)
class AnomalyScore:
    read_z: float
    write_z: float

    def exceeds(self, threshold: float) -> bool:
        return self.read_z > threshold or self.write_z > threshold


def population_stats(values: Sequence[float]) -> Tuple[float, float]:
    """
    Population mean and variance (divides by N).

    Args:
        values: Non-empty sequence of samples

    Returns:
        (mean, variance)
    """
    mean = statistics.fmean(values)
    variance = statistics.pvariance(values, mean)
    return mean, variance


class AnomalyDetector:
    """
    Detects latency anomalies from an entity's history.

    Only upward deviations count; a drop in latency is never an anomaly.
    """

    def __init__(self, threshold: float = DEFAULT_THRESHOLD,
                 min_history: int = DEFAULT_MIN_HISTORY,
                 denominator: ZScoreDenominator = ZScoreDenominator.STDDEV):
        """
        Initialize the anomaly detector.

        Args:
            threshold: z-score above which the latest snapshot is anomalous
            min_history: Snapshots required before anything is flagged
            denominator: Divide deviations by the variance or the standard deviation
        """
        self.threshold = threshold
        self.min_history = min_history
        self.denominator = ZScoreDenominator(denominator)
        self.logger = logging.getLogger(__name__)

    def _z(self, value: float, mean: float, variance: float) -> float:
        if self.denominator == ZScoreDenominator.VARIANCE:
            scale = variance
        else:
            scale = math.sqrt(variance)

        # A flat history has nothing to deviate from
        if scale == 0:
            return 0.0

        return (value - mean) / scale

    def score(self, history: Sequence[EntitySnapshot]) -> Optional[AnomalyScore]:
        """
        z-scores of the latest snapshot's read and write latency.

        Args:
            history: Snapshots oldest first

        Returns:
            AnomalyScore, or None when the history is too short
        """
        if len(history) < self.min_history:
            return None

        latest = history[-1]

        read_mean, read_var = population_stats([s.read_latency for s in history])
        write_mean, write_var = population_stats([s.write_latency for s in history])

        return AnomalyScore(
            read_z=self._z(latest.read_latency, read_mean, read_var),
            write_z=self._z(latest.write_latency, write_mean, write_var),
        )

    def detect(self, history: Sequence[EntitySnapshot]) -> bool:
        """
        Whether the latest snapshot is an upward latency anomaly.

        Args:
            history: Snapshots oldest first

        Returns:
            True if the read or write z-score exceeds the threshold
        """
        score = self.score(history)
        if score is None:
            return False

        anomalous = score.exceeds(self.threshold)
        if anomalous:
            self.logger.debug(
                f"Anomaly for {history[-1].entity}: "
                f"read_z={score.read_z:.2f} write_z={score.write_z:.2f}"
            )
        return anomalous
