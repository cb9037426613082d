# ioeye/utils/helpers.py - Helper functions
"""
General utility and helper functions.
"""

import os
import platform
from pathlib import Path
from typing import Optional, Tuple
import logging


logger = logging.getLogger(__name__)

# tracefs may be mounted in either place depending on the distribution
TRACEFS_ROOTS = (Path('/sys/kernel/tracing'), Path('/sys/kernel/debug/tracing'))

REQUIRED_TRACEPOINTS = ('block/block_rq_insert', 'block/block_rq_issue', 'block/block_rq_complete')


def check_root_privileges() -> bool:
    """
    Check if running with root privileges.

    Returns:
        True if running as root, False otherwise
    """
    return os.geteuid() == 0 if hasattr(os, 'geteuid') else False


def check_bcc_installed() -> bool:
    """
    Check if BCC is installed and available.

    Returns:
        True if BCC is available, False otherwise
    """
    try:
        import bcc  # noqa: F401
        return True
    except ImportError:
        return False


def parse_kernel_version(release: str) -> Tuple[int, int, int]:
    """
    Parse a kernel release string such as '6.8.0-45-generic'.

    Returns:
        Tuple of (major, minor, patch); zeros for unparseable parts
    """
    parts = release.strip().split('-')[0].split('.')
    numbers = []

    for part in parts[:3]:
        digits = ''.join(ch for ch in part if ch.isdigit())
        numbers.append(int(digits) if digits else 0)

    while len(numbers) < 3:
        numbers.append(0)

    return tuple(numbers)


def check_kernel_version() -> Tuple[int, int, int]:
    """
    Get Linux kernel version.

    Returns:
        Tuple of (major, minor, patch) version numbers
    """
    return parse_kernel_version(platform.release())


def check_ebpf_support() -> bool:
    """
    Check if the kernel supports the probes used by the tracer.

    Returns:
        True if eBPF is supported, False otherwise
    """
    major, minor, _ = check_kernel_version()

    # Tracepoint programs need 4.7+, BCC works best with 4.9+
    if major < 4 or (major == 4 and minor < 9):
        logger.warning(f"Kernel version {major}.{minor} may not fully support eBPF (4.9+ recommended)")
        return False

    return True


def check_block_tracepoints() -> bool:
    """
    Check that the block layer tracepoints are exposed by tracefs.
    """
    for root in TRACEFS_ROOTS:
        events = root / 'events'
        if events.is_dir():
            return all((events / tp).is_dir() for tp in REQUIRED_TRACEPOINTS)
    return False


def format_bytes(bytes_count: float) -> str:
    """
    Format bytes into human-readable string.

    Args:
        bytes_count: Number of bytes

    Returns:
        Formatted string (e.g., "1.5 MB")
    """
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_count < 1024.0:
            return f"{bytes_count:.1f} {unit}"
        bytes_count /= 1024.0

    return f"{bytes_count:.1f} PB"


def format_duration(duration_ns: int) -> str:
    """
    Format duration in nanoseconds to human-readable string.

    Args:
        duration_ns: Duration in nanoseconds

    Returns:
        Formatted string (e.g., "1.5ms")
    """
    if duration_ns < 1000:
        return f"{duration_ns}ns"
    elif duration_ns < 1_000_000:
        return f"{duration_ns/1000:.1f}us"
    elif duration_ns < 1_000_000_000:
        return f"{duration_ns/1_000_000:.1f}ms"
    else:
        return f"{duration_ns/1_000_000_000:.1f}s"


def get_process_name(pid: int) -> Optional[str]:
    """
    Get process name from PID.

    Args:
        pid: Process ID

    Returns:
        Process name or None if not found
    """
    try:
        with open(f"/proc/{pid}/comm", 'r') as f:
            return f.read().strip()
    except OSError:
        return None


def resolve_entity_by_comm(event) -> Optional[str]:
    """
    Fallback entity resolver: the task name carried by the event,
    else the current name of its process.

    Args:
        event: RawIOEvent

    Returns:
        Entity name or None
    """
    if event.comm:
        return event.comm
    if event.pid:
        return get_process_name(event.pid)
    return None


def check_prerequisites() -> bool:
    """
    Check all prerequisites for running the tracer.

    Returns:
        True if all prerequisites are met, False otherwise
    """
    checks = [
        ("Root privileges", check_root_privileges()),
        ("BCC installed", check_bcc_installed()),
        ("eBPF support", check_ebpf_support()),
        ("Block tracepoints", check_block_tracepoints()),
    ]

    all_passed = True

    print("Checking prerequisites...")
    for name, passed in checks:
        status = "✓" if passed else "✗"
        print(f"  {status} {name}")

        if not passed:
            all_passed = False

    return all_passed
