# ioeye/exporters/__init__.py - Exporters module
"""
Exporters for outputting analysis results.

This module provides:
- prometheus.py: Prometheus metrics exporter
- stdout.py: Console output exporter
"""
