# ioeye/analyzer/__init__.py - Analysis module
"""
Analyzer module for processing per-entity snapshot history.

This module provides:
- history.py: Bounded per-entity snapshot history
- bottleneck.py: Bottleneck classification
- anomaly.py: Latency anomaly detection
- trend.py: Latency trend and top-N ranking
- storage_analyzer.py: Thread-safe facade publishing analysis results
"""
