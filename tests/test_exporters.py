# tests/test_exporters.py - Tests for output exporters
"""
Unit tests for the stdout and Prometheus exporters.
"""

import pytest
from prometheus_client import CollectorRegistry
from ioeye.analyzer.storage_analyzer import StorageAnalyzer
from ioeye.collector.aggregator import EntitySnapshot
from ioeye.exporters.prometheus import PrometheusExporter
from ioeye.exporters.stdout import StdoutExporter


MS = 1_000_000


@pytest.fixture
def snapshots():
    return {
        "db": EntitySnapshot(entity="db", namespace="prod", read_latency=3 * MS,
                             disk_latency=8 * MS, read_iops=120.0, read_throughput=4096.0,
                             timestamp=1.0),
        "web": EntitySnapshot(entity="web", namespace="prod", write_latency=1 * MS,
                              write_iops=4.0, timestamp=1.0),
    }


@pytest.fixture
def analyzer(snapshots):
    analyzer = StorageAnalyzer()
    analyzer.add_snapshots(snapshots)
    return analyzer


class TestStdoutExporter:
    """Test cases for StdoutExporter"""

    def test_export_cycle(self, snapshots, analyzer, capsys):
        exporter = StdoutExporter(use_colors=False)

        exporter.export_cycle(snapshots, analyzer)

        out = capsys.readouterr().out
        assert "2 entities" in out
        assert "db" in out
        assert "disk" in out
        assert "3.0ms" in out
        assert "\x1b[" not in out

    def test_print_report(self, analyzer, capsys):
        exporter = StdoutExporter(use_colors=False, top_n=1)

        exporter.print_report(analyzer)

        out = capsys.readouterr().out
        assert "Top 1 slow entities" in out
        assert "1. db" in out

    def test_print_report_empty(self, capsys):
        StdoutExporter(use_colors=False).print_report(StorageAnalyzer())

        assert "No storage activity recorded." in capsys.readouterr().out

    def test_print_stats(self, capsys):
        exporter = StdoutExporter(use_colors=False)

        exporter.print_stats({
            'completed_cycles': 4,
            'skipped_cycles': 1,
            'collector_errors': 1,
            'correlator': {'completed': 10, 'pending': 2, 'unmatched': 3, 'expired': 0},
            'aggregator': {'tracked_entities': 2, 'unattributed_operations': 5},
        })

        out = capsys.readouterr().out
        assert "Completed: 4" in out
        assert "Skipped: 1" in out
        assert "Collector errors: 1" in out
        assert "Unmatched completions: 3" in out
        assert "Unattributed operations: 5" in out


class TestPrometheusExporter:
    """Test cases for PrometheusExporter"""

    def test_export_cycle(self, snapshots, analyzer):
        exporter = PrometheusExporter(port=0, registry=CollectorRegistry())

        exporter.export_cycle(snapshots, analyzer)
        registry = exporter.registry

        assert registry.get_sample_value(
            'ioeye_latency_seconds',
            {'entity': 'db', 'namespace': 'prod', 'component': 'disk'},
        ) == pytest.approx(0.008)
        assert registry.get_sample_value(
            'ioeye_iops', {'entity': 'db', 'namespace': 'prod', 'operation': 'read'},
        ) == 120.0
        assert registry.get_sample_value(
            'ioeye_bottleneck', {'entity': 'db', 'namespace': 'prod', 'type': 'disk'},
        ) == 1.0
        assert registry.get_sample_value(
            'ioeye_bottleneck', {'entity': 'db', 'namespace': 'prod', 'type': 'queue'},
        ) == 0.0
        assert registry.get_sample_value(
            'ioeye_latency_anomaly', {'entity': 'web', 'namespace': 'prod'},
        ) == 0.0
        assert registry.get_sample_value('ioeye_aggregation_cycles_total') == 1.0

    def test_get_metrics_text(self, snapshots, analyzer):
        exporter = PrometheusExporter(registry=CollectorRegistry())
        exporter.export_cycle(snapshots, analyzer)

        text = exporter.get_metrics_text()

        assert 'ioeye_throughput_bytes_per_second' in text
        assert 'entity="web"' in text

    def test_forgotten_entity_labels_removed(self, snapshots, analyzer):
        """Test that entities dropped from the analyzer stop being exported"""
        exporter = PrometheusExporter(registry=CollectorRegistry())
        exporter.export_cycle(snapshots, analyzer)

        analyzer.forget(["web"])
        exporter.export_cycle({"db": snapshots["db"]}, analyzer)
        registry = exporter.registry

        assert registry.get_sample_value(
            'ioeye_iops', {'entity': 'web', 'namespace': 'prod', 'operation': 'write'},
        ) is None
        assert registry.get_sample_value(
            'ioeye_bottleneck', {'entity': 'web', 'namespace': 'prod', 'type': 'none'},
        ) is None
        assert registry.get_sample_value(
            'ioeye_iops', {'entity': 'db', 'namespace': 'prod', 'operation': 'read'},
        ) == 120.0
        assert set(exporter.exported) == {"db"}
