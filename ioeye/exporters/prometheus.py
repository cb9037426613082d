# ioeye/exporters/prometheus.py - Prometheus metrics exporter
"""
Exports per-entity storage metrics in Prometheus format.
Provides HTTP endpoint for Prometheus to scrape.
"""

from prometheus_client import CollectorRegistry, Counter, Gauge, REGISTRY, generate_latest, start_http_server
from typing import Dict, Mapping, Optional
import logging

from ioeye.analyzer.bottleneck import BottleneckType
from ioeye.collector.aggregator import EntitySnapshot


NS_PER_SECOND = 1_000_000_000


class PrometheusExporter:
    """
    Exports analysis results to Prometheus.

    Gauges are refreshed after every aggregation cycle.
    """

    def __init__(self, port: int = 9090, registry: Optional[CollectorRegistry] = None):
        """
        Initialize the Prometheus exporter.

        Args:
            port: Port to expose metrics on
            registry: Registry to register metrics in (default: global)
        """
        self.port = port
        self.registry = registry if registry is not None else REGISTRY
        self.logger = logging.getLogger(__name__)
        # Label sets written so far: entity -> namespace
        self.exported: Dict[str, str] = {}

        labels = ['entity', 'namespace']

        self.latency = Gauge(
            'ioeye_latency_seconds',
            'Most recent I/O latency by component',
            labels + ['component'],
            registry=self.registry
        )

        self.iops = Gauge(
            'ioeye_iops',
            'I/O operations per second',
            labels + ['operation'],
            registry=self.registry
        )

        self.throughput = Gauge(
            'ioeye_throughput_bytes_per_second',
            'I/O throughput in bytes per second',
            labels + ['operation'],
            registry=self.registry
        )

        self.anomaly = Gauge(
            'ioeye_latency_anomaly',
            'Whether the latest latency is anomalous (1) or not (0)',
            labels,
            registry=self.registry
        )

        self.bottleneck = Gauge(
            'ioeye_bottleneck',
            'Current bottleneck type (1 for the active type)',
            labels + ['type'],
            registry=self.registry
        )

        self.cycles = Counter(
            'ioeye_aggregation_cycles_total',
            'Number of completed aggregation cycles',
            registry=self.registry
        )

        self.logger.info(f"Prometheus exporter initialized on port {port}")

    def start(self):
        """
        Start the Prometheus HTTP server.
        """
        try:
            start_http_server(self.port, registry=self.registry)
            self.logger.info(f"Prometheus metrics available at http://localhost:{self.port}/metrics")
        except OSError as e:
            self.logger.error(f"Failed to start Prometheus server: {e}")
            raise

    def record_snapshot(self, snapshot: EntitySnapshot, bottleneck: BottleneckType, anomaly: bool):
        """
        Update all gauges of one entity.
        """
        entity = snapshot.entity
        namespace = snapshot.namespace
        self.exported[entity] = namespace

        components = {
            'read': snapshot.read_latency,
            'write': snapshot.write_latency,
            'queue': snapshot.queue_latency,
            'disk': snapshot.disk_latency,
            'network': snapshot.network_latency,
        }
        for component, value_ns in components.items():
            self.latency.labels(entity=entity, namespace=namespace,
                                component=component).set(value_ns / NS_PER_SECOND)

        self.iops.labels(entity=entity, namespace=namespace, operation='read').set(snapshot.read_iops)
        self.iops.labels(entity=entity, namespace=namespace, operation='write').set(snapshot.write_iops)
        self.throughput.labels(entity=entity, namespace=namespace,
                               operation='read').set(snapshot.read_throughput)
        self.throughput.labels(entity=entity, namespace=namespace,
                               operation='write').set(snapshot.write_throughput)

        self.anomaly.labels(entity=entity, namespace=namespace).set(1 if anomaly else 0)

        for bottleneck_type in BottleneckType:
            self.bottleneck.labels(entity=entity, namespace=namespace,
                                   type=bottleneck_type.value).set(
                1 if bottleneck_type == bottleneck else 0
            )

    def export_cycle(self, snapshots: Mapping[str, EntitySnapshot], analyzer):
        """
        Record one aggregation cycle. Matches the monitor's on_cycle hook.

        Args:
            snapshots: Snapshots produced by the cycle
            analyzer: StorageAnalyzer holding the analysis results
        """
        for entity, snapshot in snapshots.items():
            self.record_snapshot(snapshot, analyzer.get_bottleneck(entity),
                                 analyzer.has_anomaly(entity))

        for entity in list(self.exported):
            if analyzer.get_snapshot(entity) is None:
                self.remove_entity(entity)

        self.cycles.inc()

    def remove_entity(self, entity: str):
        """
        Remove every label set of an entity that is no longer tracked.
        """
        namespace = self.exported.pop(entity, None)
        if namespace is None:
            return

        for component in ('read', 'write', 'queue', 'disk', 'network'):
            self.latency.remove(entity, namespace, component)
        for operation in ('read', 'write'):
            self.iops.remove(entity, namespace, operation)
            self.throughput.remove(entity, namespace, operation)
        self.anomaly.remove(entity, namespace)
        for bottleneck_type in BottleneckType:
            self.bottleneck.remove(entity, namespace, bottleneck_type.value)

        self.logger.debug(f"Removed metrics for {entity}")

    def get_metrics_text(self) -> str:
        """
        Get current metrics in Prometheus text format.

        Returns:
            Metrics as text
        """
        return generate_latest(self.registry).decode('utf-8')
