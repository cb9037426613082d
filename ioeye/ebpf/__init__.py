# ioeye/ebpf/__init__.py - eBPF programs module
"""
eBPF programs for tracing storage I/O in the kernel.

This module contains C programs that run in the kernel space:
- io_tracer.c: Block layer (insert/issue/complete) and vfs read/write
  start/end probes
"""
