# ioeye/analyzer/trend.py - Latency trend and ranking
"""
Latency trend over a lookback window and top-N ranking of entities.
"""

from typing import Iterable, List, NamedTuple, Optional, Sequence
import time

from ioeye.collector.aggregator import EntitySnapshot
from ioeye.exceptions import InsufficientDataError


TREND_INCREASED = 'increased'
TREND_DECREASED = 'decreased'
TREND_STABLE = 'stable'

# Changes within +/- this percentage count as stable
STABLE_BAND_PERCENT = 10.0

RANK_BY_LATENCY = 'latency'
RANK_BY_IOPS = 'iops'
RANK_BY_THROUGHPUT = 'throughput'

_RANK_KEYS = {
    RANK_BY_LATENCY: lambda s: s.total_latency,
    RANK_BY_IOPS: lambda s: s.total_iops,
    RANK_BY_THROUGHPUT: lambda s: s.total_throughput,
}


class LatencyTrend(NamedTuple):
    direction: str
    change_percent: float


def _window_start(history: Sequence[EntitySnapshot], boundary: float) -> EntitySnapshot:
    """
    Oldest snapshot at or after the boundary, scanning newest to oldest.
    Falls back to the oldest snapshot when none is inside the window.
    """
    oldest_in_window = None

    for snapshot in reversed(history):
        if snapshot.timestamp < boundary:
            break
        oldest_in_window = snapshot

    if oldest_in_window is None:
        return history[0]
    return oldest_in_window


def latency_trend(history: Sequence[EntitySnapshot], window_seconds: float,
                  now: Optional[float] = None) -> LatencyTrend:
    """
    Direction and percentage change of combined read+write latency.

    Args:
        history: Snapshots oldest first
        window_seconds: Lookback window
        now: Reference time in epoch seconds (defaults to the wall clock)

    Returns:
        LatencyTrend(direction, change_percent)

    Raises:
        InsufficientDataError: fewer than two snapshots
    """
    if len(history) < 2:
        entity = history[0].entity if history else ''
        raise InsufficientDataError(entity, len(history), 2)

    if now is None:
        now = time.time()

    latest = history[-1]
    oldest = _window_start(history, now - window_seconds)

    old_total = oldest.total_latency
    new_total = latest.total_latency

    if old_total == 0:
        if new_total > 0:
            return LatencyTrend(TREND_INCREASED, 100.0)
        return LatencyTrend(TREND_STABLE, 0.0)

    change = (new_total - old_total) / old_total * 100

    if change > STABLE_BAND_PERCENT:
        return LatencyTrend(TREND_INCREASED, change)
    elif change < -STABLE_BAND_PERCENT:
        return LatencyTrend(TREND_DECREASED, change)
    return LatencyTrend(TREND_STABLE, change)


def top_n(snapshots: Iterable[EntitySnapshot], n: int,
          by: str = RANK_BY_LATENCY) -> List[EntitySnapshot]:
    """
    Rank snapshots by a combined read+write value, highest first.

    Ties keep their input order.

    Args:
        snapshots: Latest snapshot of each entity
        n: Number of entries to return (clamped to what is available)
        by: 'latency', 'iops' or 'throughput'

    Returns:
        List of at most n snapshots
    """
    if by not in _RANK_KEYS:
        raise ValueError(f"Unknown ranking key: {by}")

    if n <= 0:
        return []

    ranked = sorted(snapshots, key=_RANK_KEYS[by], reverse=True)
    return ranked[:n]
