# ioeye/collector/__init__.py - Event collection module
"""
Collector module for gathering and correlating kernel I/O events.

This module provides:
- tracer.py: BCC-based tracer for loading the eBPF program
- event_handler.py: Raw record decoding and event types
- sources.py: Event source interface (tracer-backed and replay)
- correlator.py: Start/completion pairing into completed operations
- aggregator.py: Per-entity counters and rate snapshots
"""
