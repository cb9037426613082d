# tests/test_history.py - Tests for the history store
"""
Unit tests for the HistoryStore class.
"""

import threading

import pytest
from ioeye.analyzer.history import HistoryStore
from ioeye.collector.aggregator import EntitySnapshot
from ioeye.exceptions import OutOfOrderSnapshotError


def snap(entity, timestamp, read_latency=0):
    return EntitySnapshot(entity=entity, read_latency=read_latency, timestamp=timestamp)


class TestHistoryStore:
    """Test cases for HistoryStore"""

    def test_unknown_entity(self):
        """Test that unseen entities have no latest and an empty history"""
        store = HistoryStore()

        assert store.latest("pod-a") is None
        assert store.all("pod-a") == ()
        assert "pod-a" not in store

    def test_append_and_latest(self):
        store = HistoryStore()
        store.append("pod-a", snap("pod-a", 1.0))
        store.append("pod-a", snap("pod-a", 2.0))

        assert store.latest("pod-a").timestamp == 2.0
        assert [s.timestamp for s in store.all("pod-a")] == [1.0, 2.0]
        assert store.entities() == ["pod-a"]
        assert len(store) == 1

    def test_capacity_evicts_oldest(self):
        """Test that history never exceeds capacity"""
        store = HistoryStore(capacity=3)

        for t in range(5):
            store.append("pod-a", snap("pod-a", float(t)))

        history = store.all("pod-a")
        assert len(history) == 3
        assert [s.timestamp for s in history] == [2.0, 3.0, 4.0]

    def test_equal_timestamps_accepted(self):
        store = HistoryStore()
        store.append("pod-a", snap("pod-a", 5.0))
        store.append("pod-a", snap("pod-a", 5.0))

        assert len(store.all("pod-a")) == 2

    def test_out_of_order_rejected(self):
        """Test that an older snapshot is rejected and history is unchanged"""
        store = HistoryStore()
        store.append("pod-a", snap("pod-a", 10.0))

        with pytest.raises(OutOfOrderSnapshotError):
            store.append("pod-a", snap("pod-a", 9.0))

        assert [s.timestamp for s in store.all("pod-a")] == [10.0]

    def test_reads_are_copies(self):
        """Test that later appends do not change a previously read history"""
        store = HistoryStore()
        store.append("pod-a", snap("pod-a", 1.0))

        history = store.all("pod-a")
        store.append("pod-a", snap("pod-a", 2.0))

        assert len(history) == 1

    def test_entities_are_independent(self):
        store = HistoryStore(capacity=2)
        store.append("pod-a", snap("pod-a", 5.0))
        store.append("pod-b", snap("pod-b", 1.0))

        assert store.latest("pod-a").entity == "pod-a"
        assert store.latest("pod-b").timestamp == 1.0

    def test_remove(self):
        store = HistoryStore()
        store.append("pod-a", snap("pod-a", 1.0))

        assert store.remove("pod-a") is True
        assert store.remove("pod-a") is False
        assert store.all("pod-a") == ()
        assert "pod-a" not in store

    def test_clear(self):
        store = HistoryStore()
        store.append("pod-a", snap("pod-a", 1.0))
        store.clear()

        assert len(store) == 0

    @pytest.mark.parametrize("capacity", [0, -1])
    def test_invalid_capacity(self, capacity):
        with pytest.raises(ValueError):
            HistoryStore(capacity=capacity)


class TestHistoryConcurrency:
    """Test cases for concurrent access to HistoryStore"""

    def test_entity_lock_does_not_block_other_entities(self):
        """Test that a busy entity does not hold up appends to another"""
        store = HistoryStore()
        store.append("pod-a", snap("pod-a", 1.0))
        store.append("pod-b", snap("pod-b", 1.0))

        writer_b = threading.Thread(target=store.append, args=("pod-b", snap("pod-b", 2.0)))
        writer_a = threading.Thread(target=store.append, args=("pod-a", snap("pod-a", 2.0)))

        with store._get("pod-a")._lock:
            writer_b.start()
            writer_b.join(timeout=5)
            assert not writer_b.is_alive()
            assert store.latest("pod-b").timestamp == 2.0

            writer_a.start()
            writer_a.join(timeout=0.1)
            assert writer_a.is_alive()

        writer_a.join(timeout=5)
        assert not writer_a.is_alive()
        assert store.latest("pod-a").timestamp == 2.0

    def test_readers_see_whole_bounded_sequences(self):
        """Test that reads during appends are ordered and within capacity"""
        capacity = 10
        store = HistoryStore(capacity=capacity)
        done = threading.Event()
        violations = []

        def write():
            for i in range(2000):
                store.append("pod-a", snap("pod-a", float(i)))
            done.set()

        def read():
            while not done.is_set():
                history = store.all("pod-a")
                if len(history) > capacity:
                    violations.append(f"length {len(history)}")
                timestamps = [s.timestamp for s in history]
                if timestamps != sorted(timestamps):
                    violations.append(f"order {timestamps}")

        readers = [threading.Thread(target=read) for _ in range(3)]
        writer = threading.Thread(target=write)
        for thread in readers + [writer]:
            thread.start()
        for thread in [writer] + readers:
            thread.join(timeout=30)

        assert violations == []
        history = store.all("pod-a")
        assert [s.timestamp for s in history] == [float(i) for i in range(1990, 2000)]
