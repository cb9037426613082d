# ioeye/cli.py - Command-line interface
"""
Command-line interface for ioeye.
"""

import click
import sys
import time

from ioeye.utils.logger import get_logger, setup_logging
from ioeye.utils.config import Config
from ioeye.utils.helpers import check_prerequisites


def build_monitor(cfg: Config, source, on_cycle=None):
    """
    Assemble the correlation, aggregation and analysis pipeline.

    Args:
        cfg: Loaded configuration
        source: IOEventSource feeding the pipeline
        on_cycle: Optional per-cycle hook (exporter)

    Returns:
        StorageMonitor ready to start
    """
    from ioeye.analyzer.anomaly import AnomalyDetector
    from ioeye.analyzer.bottleneck import BottleneckThresholds
    from ioeye.analyzer.storage_analyzer import StorageAnalyzer
    from ioeye.collector.aggregator import CounterAggregator
    from ioeye.collector.correlator import EventCorrelator
    from ioeye.directory import StaticEntityDirectory
    from ioeye.monitor import StorageMonitor
    from ioeye.utils.helpers import resolve_entity_by_comm

    namespace = cfg.get('monitor.namespace', '')

    correlator = EventCorrelator(
        horizon_seconds=cfg.get('correlator.horizon_seconds', 30),
        max_pending=cfg.get('correlator.max_pending', 10240),
        resolver=resolve_entity_by_comm,
    )
    aggregator = CounterAggregator(
        namespace=namespace,
        carry_forward_latency=cfg.get('aggregator.carry_forward_latency', True),
        idle_eviction_cycles=cfg.get('aggregator.idle_eviction_cycles', 0),
    )
    analyzer = StorageAnalyzer(
        capacity=cfg.get('history.capacity', 100),
        thresholds=BottleneckThresholds.from_config(cfg.get('analysis.thresholds')),
        detector=AnomalyDetector(
            threshold=cfg.get('analysis.anomaly.threshold', 2.0),
            min_history=cfg.get('analysis.anomaly.min_history', 10),
            denominator=cfg.get('analysis.anomaly.zscore_denominator', 'stddev'),
        ),
        trend_window=cfg.get('analysis.trend_window_seconds', 300),
    )

    return StorageMonitor(
        source=source,
        correlator=correlator,
        aggregator=aggregator,
        analyzer=analyzer,
        directory=StaticEntityDirectory(cfg.get('monitor.entities', [])),
        namespace=namespace,
        interval=cfg.get('monitor.interval', 10),
        on_cycle=on_cycle,
    )


@click.group()
@click.option('--log-level', default='INFO', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR']))
@click.option('--log-file', type=click.Path(), help='Log file path')
@click.pass_context
def cli(ctx, log_level, log_file):
    """
    ioeye - storage I/O latency attribution

    Correlates kernel I/O events per workload, classifies bottlenecks
    and flags latency anomalies.
    """
    ctx.ensure_object(dict)

    setup_logging(level=log_level, log_file=log_file)

    ctx.obj['log_level'] = log_level
    ctx.obj['log_file'] = log_file


@cli.command()
@click.option('--config', 'config_file', type=click.Path(exists=True), help='Configuration file')
@click.option('--namespace', help='Namespace stamped on snapshots and passed to the directory')
@click.option('--interval', type=float, help='Aggregation interval (seconds)')
@click.option('--entities', help='Comma-separated list of entities to report')
@click.option('--pid', type=int, help='Only trace this process ID')
@click.option('--duration', type=int, help='Duration to run (seconds)')
@click.option('--output-format', type=click.Choice(['stdout', 'prometheus']), help='Output format')
@click.pass_context
def start(ctx, config_file, namespace, interval, entities, pid, duration, output_format):
    """
    Start monitoring storage I/O.

    Example:
        ioeye start
        ioeye start --interval 5 --entities "postgres,redis-server"
        ioeye start --config configs/default.yaml --output-format prometheus
    """
    from ioeye.collector.sources import TracerEventSource
    from ioeye.collector.tracer import IOTracer
    from ioeye.exceptions import TracerError
    from ioeye.exporters.prometheus import PrometheusExporter
    from ioeye.exporters.stdout import StdoutExporter

    logger = get_logger(__name__)

    if not check_prerequisites():
        click.echo("Prerequisites check failed. Please fix issues above.", err=True)
        sys.exit(1)

    cfg = Config(config_file)

    # Override config with CLI options
    if namespace is not None:
        cfg.set('monitor.namespace', namespace)
    if interval is not None:
        cfg.set('monitor.interval', interval)
    if entities:
        cfg.set('monitor.entities', [e.strip() for e in entities.split(',') if e.strip()])
    if pid is not None:
        cfg.set('tracer.pid', pid)
    if output_format:
        cfg.set('output.format', output_format)

    try:
        cfg.validate()
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    stdout_exporter = StdoutExporter(top_n=cfg.get('output.top_n', 5))

    if cfg.get('output.format') == 'prometheus':
        exporter = PrometheusExporter(port=cfg.get('output.prometheus_port', 9090))
        exporter.start()
    else:
        exporter = stdout_exporter

    tracer = IOTracer({
        'pid': cfg.get('tracer.pid'),
        'buffer_size': cfg.get('tracer.buffer_size', 256),
    })

    try:
        tracer.initialize()
    except TracerError as e:
        logger.error(f"Failed to start tracer: {e}")
        sys.exit(1)

    monitor = build_monitor(cfg, TracerEventSource(tracer), on_cycle=exporter.export_cycle)

    try:
        monitor.start()
        logger.info("Monitoring started. Press Ctrl+C to stop.")

        start_time = time.time()
        while monitor.running:
            if duration and time.time() - start_time >= duration:
                break
            time.sleep(1)

    except KeyboardInterrupt:
        logger.info("Stopping monitor...")
    finally:
        monitor.stop()
        stdout_exporter.print_stats(monitor.get_stats())
        stdout_exporter.print_report(monitor.analyzer)


@cli.command()
def check():
    """
    Check system prerequisites for running the tracer.

    Verifies:
    - Root privileges
    - BCC installation
    - Kernel eBPF support
    - Block layer tracepoints
    """
    if check_prerequisites():
        click.echo("\n✓ All prerequisites met!")
        sys.exit(0)
    else:
        click.echo("\n✗ Some prerequisites are missing")
        sys.exit(1)


@cli.command(name='show-config')
@click.option('--config', 'config_file', type=click.Path(exists=True), help='Configuration file')
@click.option('--output', type=click.Path(), help='Write the effective configuration to this file')
def show_config(config_file, output):
    """
    Print the effective configuration (defaults merged with a file).

    Example:
        ioeye show-config --config configs/default.yaml
    """
    import yaml

    cfg = Config(config_file)

    if output:
        cfg.save_to_file(output)
        click.echo(f"Configuration written to {output}")
    else:
        click.echo(yaml.dump(cfg.to_dict(), default_flow_style=False))


if __name__ == '__main__':
    cli(obj={})
