# tests/test_monitor.py - Tests for the storage monitor
"""
Unit tests for the StorageMonitor class, driven by synthetic events.
"""

import time
from unittest.mock import Mock

import pytest
from ioeye.analyzer.bottleneck import BottleneckType
from ioeye.analyzer.storage_analyzer import StorageAnalyzer
from ioeye.collector.aggregator import CounterAggregator
from ioeye.collector.correlator import EventCorrelator
from ioeye.collector.event_handler import (
    LAYER_BLOCK, LAYER_VFS, OP_READ, OP_WRITE, PHASE_END, PHASE_START, RawIOEvent,
)
from ioeye.collector.sources import ReplayEventSource
from ioeye.directory import CallableEntityDirectory, StaticEntityDirectory
from ioeye.exceptions import InsufficientDataError
from ioeye.monitor import StorageMonitor


MS = 1_000_000


def io_pair(key, entity, start_ns, duration_ns, op=OP_READ, layer=LAYER_VFS, bytes=4096):
    return [
        RawIOEvent(phase=PHASE_START, key=key, op=op, timestamp_ns=start_ns,
                   entity=entity, layer=layer),
        RawIOEvent(phase=PHASE_END, key=key, op=op, timestamp_ns=start_ns + duration_ns,
                   layer=layer, bytes=bytes),
    ]


def build(events, directory=None, on_cycle=None, interval=10.0):
    return StorageMonitor(
        source=ReplayEventSource(events),
        correlator=EventCorrelator(),
        aggregator=CounterAggregator(namespace="prod", clock=lambda: 0.0),
        analyzer=StorageAnalyzer(),
        directory=directory,
        namespace="prod",
        interval=interval,
        on_cycle=on_cycle,
    )


class TestStorageMonitor:
    """Test cases for StorageMonitor"""

    def test_end_to_end_cycle(self):
        """Test events flowing through correlation, aggregation and analysis"""
        events = (
            io_pair(1, "db", 0, 2 * MS, op=OP_READ, bytes=8192)
            + io_pair(2, "db", 10, 4 * MS, op=OP_WRITE, bytes=4096)
            + io_pair(3, "db", 20, 8 * MS, layer=LAYER_BLOCK)
            + io_pair(4, "web", 30, 1 * MS)
        )
        monitor = build(events)

        assert monitor.drain() == len(events)
        assert monitor.run_cycle(now=2.0) is True

        db = monitor.get_snapshot("db")
        assert db.namespace == "prod"
        assert db.read_latency == 2 * MS
        assert db.write_latency == 4 * MS
        assert db.disk_latency == 8 * MS
        assert db.read_iops == 0.5
        assert db.read_throughput == 4096.0
        assert monitor.get_bottleneck("db") == BottleneckType.DISK
        assert monitor.get_bottleneck("web") == BottleneckType.NONE
        assert monitor.has_anomaly("db") is False
        assert [s.entity for s in monitor.get_top_n(1)] == ["db"]
        assert set(monitor.get_all_snapshots()) == {"db", "web"}

    def test_orphan_completion_is_ignored(self):
        """Test that a completion with no start does not break the cycle"""
        events = [RawIOEvent(phase=PHASE_END, key=1, op=OP_READ, timestamp_ns=5, entity="db")]
        monitor = build(events)

        monitor.drain()

        assert monitor.run_cycle(now=1.0) is True
        assert monitor.get_snapshot("db") is None
        assert monitor.get_stats()['correlator']['unmatched'] == 1

    def test_directory_restricts_entities(self):
        monitor = build(io_pair(1, "db", 0, MS) + io_pair(2, "batch", 0, MS),
                        directory=StaticEntityDirectory(["db", "idle"]))

        monitor.drain()
        monitor.run_cycle(now=1.0)

        assert set(monitor.get_all_snapshots()) == {"db", "idle"}
        assert monitor.get_snapshot("idle").read_iops == 0.0

    def test_directory_failure_skips_cycle(self):
        """Test that a directory fault leaves history and classification untouched"""
        calls = []

        def lookup(namespace):
            calls.append(namespace)
            if len(calls) > 1:
                raise ConnectionError("api unavailable")
            return ["db"]

        monitor = build(io_pair(1, "db", 0, 8 * MS, layer=LAYER_BLOCK),
                        directory=CallableEntityDirectory(lookup))
        monitor.drain()
        monitor.run_cycle(now=1.0)

        assert monitor.run_cycle(now=2.0) is False

        assert calls == ["prod", "prod"]
        assert monitor.get_snapshot("db").timestamp == 1.0
        assert monitor.get_bottleneck("db") == BottleneckType.DISK
        assert monitor.skipped_cycles == 1
        assert monitor.completed_cycles == 1

    def test_collector_failure_skips_cycles(self):
        """Test that a failed event source stops snapshots instead of reporting idle entities"""
        class FailingSource(ReplayEventSource):
            def subscribe(self, kinds=None):
                yield from super().subscribe(kinds)
                raise OSError("perf buffer poll failed")

        hook = Mock()
        monitor = StorageMonitor(
            source=FailingSource(io_pair(1, "db", 0, 8 * MS, layer=LAYER_BLOCK)),
            correlator=EventCorrelator(),
            aggregator=CounterAggregator(namespace="prod", clock=lambda: 0.0),
            analyzer=StorageAnalyzer(),
            namespace="prod",
            on_cycle=hook,
        )

        monitor._collect_loop()

        assert monitor.collector_errors == 1
        assert monitor.run_cycle(now=1.0) is False
        assert monitor.run_cycle(now=2.0) is False
        assert monitor.get_snapshot("db") is None
        assert monitor.analyzer.get_history("db") == ()
        assert monitor.get_bottleneck("db") == BottleneckType.UNKNOWN
        assert monitor.skipped_cycles == 2
        assert monitor.completed_cycles == 0
        assert monitor.get_stats()['collector_failed'] is True
        hook.assert_not_called()

    def test_collector_failure_keeps_earlier_analysis(self):
        """Test that history from before the fault stays queryable"""
        monitor = build(io_pair(1, "db", 0, 8 * MS, layer=LAYER_BLOCK))
        monitor.drain()
        monitor.run_cycle(now=1.0)

        monitor.source = Mock(subscribe=Mock(side_effect=OSError("tracer detached")))
        monitor._collect_loop()

        assert monitor.run_cycle(now=2.0) is False
        assert len(monitor.analyzer.get_history("db")) == 1
        assert monitor.get_snapshot("db").timestamp == 1.0
        assert monitor.get_bottleneck("db") == BottleneckType.DISK

    def test_idle_entities_forgotten(self):
        """Test that evicted entities leave the analyzer too"""
        monitor = StorageMonitor(
            source=ReplayEventSource(io_pair(1, "db", 0, MS)),
            correlator=EventCorrelator(),
            aggregator=CounterAggregator(idle_eviction_cycles=1, clock=lambda: 0.0),
            analyzer=StorageAnalyzer(),
        )
        monitor.drain()
        monitor.run_cycle(now=1.0)
        assert monitor.get_snapshot("db") is not None

        assert monitor.run_cycle(now=2.0) is True

        assert monitor.get_snapshot("db") is None
        assert monitor.get_bottleneck("db") == BottleneckType.UNKNOWN

    def test_on_cycle_hook(self):
        hook = Mock()
        monitor = build(io_pair(1, "db", 0, MS), on_cycle=hook)
        monitor.drain()

        monitor.run_cycle(now=1.0)

        snapshots, analyzer = hook.call_args[0]
        assert set(snapshots) == {"db"}
        assert analyzer is monitor.analyzer

    def test_trend_through_monitor(self):
        monitor = build([])

        with pytest.raises(InsufficientDataError):
            monitor.get_trend("db")

    def test_get_stats(self):
        monitor = build(io_pair(1, "db", 0, MS))
        monitor.drain()
        monitor.run_cycle(now=1.0)

        stats = monitor.get_stats()

        assert stats['completed_cycles'] == 1
        assert stats['skipped_cycles'] == 0
        assert stats['correlator']['completed'] == 1
        assert stats['aggregator']['tracked_entities'] == 1

    def test_start_and_stop(self):
        """Test that both loops run and terminate on stop"""
        monitor = build(io_pair(1, "db", 0, MS), interval=0.05)

        monitor.start()
        with pytest.raises(RuntimeError):
            monitor.start()

        deadline = time.time() + 5
        while monitor.get_snapshot("db") is None and time.time() < deadline:
            time.sleep(0.01)

        monitor.stop()

        assert monitor.running is False
        assert monitor.completed_cycles >= 1
        assert monitor.get_snapshot("db") is not None
        assert monitor.correlator.get_stats()['pending'] == 0
