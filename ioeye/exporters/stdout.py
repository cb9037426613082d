# ioeye/exporters/stdout.py - Console output exporter
"""
Prints per-entity storage snapshots and analysis results to stdout.
"""

from typing import Dict, List, Mapping
from colorama import Fore, Style, init
import logging

from ioeye.analyzer.bottleneck import BottleneckType
from ioeye.collector.aggregator import EntitySnapshot
from ioeye.utils.helpers import format_bytes, format_duration


# Initialize colorama
init(autoreset=True)


class StdoutExporter:
    """
    Exports analysis results to stdout with colored output.
    """

    def __init__(self, use_colors: bool = True, top_n: int = 5):
        """
        Initialize the stdout exporter.

        Args:
            use_colors: Whether to use colored output
            top_n: Number of entities in the slow/busy rankings
        """
        self.use_colors = use_colors
        self.top_n = top_n
        self.logger = logging.getLogger(__name__)

    def _c(self, color: str) -> str:
        return color if self.use_colors else ""

    def _reset(self) -> str:
        return Style.RESET_ALL if self.use_colors else ""

    def _header(self, title: str):
        print(f"\n{self._c(Fore.CYAN)}{'='*100}{self._reset()}")
        print(f"{self._c(Fore.CYAN)}{title}{self._reset()}")
        print(f"{self._c(Fore.CYAN)}{'='*100}{self._reset()}\n")

    def export_cycle(self, snapshots: Mapping[str, EntitySnapshot], analyzer):
        """
        Print one aggregation cycle. Matches the monitor's on_cycle hook.

        Args:
            snapshots: Snapshots produced by the cycle
            analyzer: StorageAnalyzer holding the analysis results
        """
        self.print_snapshots(snapshots, analyzer)

    def print_snapshots(self, snapshots: Mapping[str, EntitySnapshot], analyzer):
        """
        Print a table of snapshots with bottleneck and anomaly columns.
        """
        self._header(f"Storage I/O by entity ({len(snapshots)} entities)")

        print(f"{'Entity':<28} {'Read lat':>10} {'Write lat':>10} {'R IOPS':>9} {'W IOPS':>9} "
              f"{'R tput':>11} {'W tput':>11} {'Bottleneck':<11} {'Anomaly':<7}")
        print(f"{'-'*100}")

        for entity in sorted(snapshots):
            snapshot = snapshots[entity]
            bottleneck = analyzer.get_bottleneck(entity)
            anomaly = analyzer.has_anomaly(entity)
            color = self._get_color_for_bottleneck(bottleneck, anomaly)

            print(f"{color}{entity[:28]:<28} "
                  f"{format_duration(snapshot.read_latency):>10} "
                  f"{format_duration(snapshot.write_latency):>10} "
                  f"{snapshot.read_iops:>9.1f} "
                  f"{snapshot.write_iops:>9.1f} "
                  f"{format_bytes(snapshot.read_throughput) + '/s':>11} "
                  f"{format_bytes(snapshot.write_throughput) + '/s':>11} "
                  f"{bottleneck.value:<11} "
                  f"{'yes' if anomaly else 'no':<7}{self._reset()}")

    def print_ranking(self, title: str, snapshots: List[EntitySnapshot]):
        """
        Print a ranked list of entities.
        """
        if not snapshots:
            return

        self._header(title)

        for i, snapshot in enumerate(snapshots, 1):
            print(f"{i}. {snapshot.entity} - "
                  f"latency {format_duration(snapshot.total_latency)}, "
                  f"{snapshot.total_iops:.1f} IOPS, "
                  f"{format_bytes(snapshot.total_throughput)}/s")

    def print_stats(self, stats: Dict):
        """
        Print pipeline statistics to stdout.

        Args:
            stats: Dictionary from StorageMonitor.get_stats()
        """
        self._header("Statistics")

        print(f"{self._c(Fore.YELLOW)}Cycles:{self._reset()}")
        print(f"  Completed: {stats.get('completed_cycles', 0)}")
        print(f"  Skipped: {stats.get('skipped_cycles', 0)}")
        print(f"  Collector errors: {stats.get('collector_errors', 0)}")

        correlator = stats.get('correlator', {})
        if correlator:
            print(f"{self._c(Fore.YELLOW)}Correlation:{self._reset()}")
            print(f"  Completed operations: {correlator.get('completed', 0)}")
            print(f"  Pending starts: {correlator.get('pending', 0)}")
            print(f"  Unmatched completions: {correlator.get('unmatched', 0)}")
            print(f"  Expired starts: {correlator.get('expired', 0)}")

        aggregator = stats.get('aggregator', {})
        if aggregator:
            print(f"{self._c(Fore.YELLOW)}Aggregation:{self._reset()}")
            print(f"  Tracked entities: {aggregator.get('tracked_entities', 0)}")
            print(f"  Unattributed operations: {aggregator.get('unattributed_operations', 0)}")

        print()

    def print_report(self, analyzer):
        """
        Print the final report: latest snapshots, rankings and health.

        Args:
            analyzer: StorageAnalyzer
        """
        snapshots = analyzer.get_all_snapshots()
        if not snapshots:
            print("No storage activity recorded.")
            return

        self.print_snapshots(snapshots, analyzer)
        self.print_ranking(f"Top {self.top_n} slow entities", analyzer.get_top_slow(self.top_n))
        self.print_ranking(f"Top {self.top_n} entities by IOPS", analyzer.get_top_iops(self.top_n))

        health = analyzer.get_health()
        if health['anomalies']:
            print(f"\n{self._c(Fore.RED)}Anomalies: {', '.join(health['anomalies'])}{self._reset()}")

        print()

    def _get_color_for_bottleneck(self, bottleneck: BottleneckType, anomaly: bool) -> str:
        """
        Get row color: red for anomalies, yellow for a known bottleneck.
        """
        if not self.use_colors:
            return ""

        if anomaly:
            return Fore.RED
        elif bottleneck in (BottleneckType.QUEUE, BottleneckType.DISK, BottleneckType.NETWORK):
            return Fore.YELLOW
        else:
            return Fore.GREEN
