# ioeye/analyzer/history.py - Bounded per-entity snapshot history
"""
Keeps the most recent snapshots of every entity.
Each entity has its own lock, so writers for different entities never
wait on each other.
"""

from collections import deque
from typing import Dict, List, Optional, Tuple
import threading
import logging

from ioeye.collector.aggregator import EntitySnapshot
from ioeye.exceptions import OutOfOrderSnapshotError


DEFAULT_CAPACITY = 100


class EntityHistory:
    """
    Ordered, capacity-bounded sequence of snapshots for one entity.

    Appending beyond capacity evicts the oldest snapshot. Timestamps
    never decrease from one entry to the next.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")

        self.capacity = capacity
        self._snapshots = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def append(self, snapshot: EntitySnapshot):
        with self._lock:
            if self._snapshots and snapshot.timestamp < self._snapshots[-1].timestamp:
                raise OutOfOrderSnapshotError(
                    f"snapshot for {snapshot.entity} at {snapshot.timestamp} is older "
                    f"than latest {self._snapshots[-1].timestamp}"
                )
            self._snapshots.append(snapshot)

    def latest(self) -> Optional[EntitySnapshot]:
        with self._lock:
            return self._snapshots[-1] if self._snapshots else None

    def snapshot(self) -> Tuple[EntitySnapshot, ...]:
        """Copy of the sequence, oldest first."""
        with self._lock:
            return tuple(self._snapshots)

    def __len__(self) -> int:
        with self._lock:
            return len(self._snapshots)


class HistoryStore:
    """
    Per-entity histories keyed by entity name.

    Readers only ever get copies; snapshots themselves are immutable.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        """
        Initialize the history store.

        Args:
            capacity: Maximum snapshots retained per entity
        """
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")

        self.capacity = capacity
        self._histories: Dict[str, EntityHistory] = {}
        # Guards the mapping only, never held while touching an EntityHistory
        self._registry_lock = threading.Lock()

        self.logger = logging.getLogger(__name__)

    def _get(self, entity: str) -> Optional[EntityHistory]:
        with self._registry_lock:
            return self._histories.get(entity)

    def _get_or_create(self, entity: str) -> EntityHistory:
        with self._registry_lock:
            history = self._histories.get(entity)
            if history is None:
                history = EntityHistory(self.capacity)
                self._histories[entity] = history
            return history

    def append(self, entity: str, snapshot: EntitySnapshot):
        """
        Append a snapshot to the entity's history, evicting the oldest
        entry when over capacity.

        Raises:
            OutOfOrderSnapshotError: snapshot is older than the latest entry
        """
        self._get_or_create(entity).append(snapshot)

    def latest(self, entity: str) -> Optional[EntitySnapshot]:
        """
        Most recent snapshot for an entity, or None if never seen.
        """
        history = self._get(entity)
        if history is None:
            return None
        return history.latest()

    def all(self, entity: str) -> Tuple[EntitySnapshot, ...]:
        """
        Read-only copy of the entity's history, oldest first.
        Empty if the entity was never seen.
        """
        history = self._get(entity)
        if history is None:
            return ()
        return history.snapshot()

    def remove(self, entity: str) -> bool:
        """
        Forget an entity's history. Returns False if it was unknown.
        """
        with self._registry_lock:
            return self._histories.pop(entity, None) is not None

    def entities(self) -> List[str]:
        with self._registry_lock:
            return list(self._histories.keys())

    def clear(self):
        with self._registry_lock:
            self._histories.clear()

    def __contains__(self, entity: str) -> bool:
        with self._registry_lock:
            return entity in self._histories

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._histories)
