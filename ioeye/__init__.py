# ioeye/__init__.py
"""
ioeye - eBPF-driven storage I/O attribution and analysis for workloads.
"""

__version__ = "0.1.0"
