# ioeye/collector/tracer.py - Kernel I/O tracer using BCC
"""
Tracer class for loading and managing the I/O eBPF program.
Uses BCC (BPF Compiler Collection) to compile and load it into the kernel.
"""

from pathlib import Path
from typing import Callable, Dict
import logging

from ioeye.exceptions import TracerError


class IOTracer:
    """
    Attaches the I/O tracing program to block-layer tracepoints and
    file-system read/write kprobes, and exposes its perf buffer.
    """

    # Block layer tracepoints and the BPF functions handling them
    BLOCK_TRACEPOINTS = {
        'block:block_rq_insert': 'trace_rq_insert',
        'block:block_rq_issue': 'trace_rq_issue',
        'block:block_rq_complete': 'trace_rq_complete',
    }

    # File-system entry points; kernel versions may differ in naming
    VFS_KERNEL_FUNCS = {
        'read': ['vfs_read', '__vfs_read'],
        'write': ['vfs_write', '__vfs_write'],
    }

    def __init__(self, config: Dict):
        """
        Initialize the IOTracer.

        Args:
            config: Configuration dictionary containing:
                - pid: Process ID to trace (optional)
                - buffer_size: Perf buffer size in pages
        """
        self.config = config
        self.pid = config.get('pid')
        self.buffer_size = config.get('buffer_size', 256)

        self.bpf = None
        self.event_handlers = {}
        self.running = False
        self.buffer_open = False
        self.attached_probes = []

        self.logger = logging.getLogger(__name__)

        # Path to eBPF C programs
        self.ebpf_dir = Path(__file__).parent.parent / 'ebpf'

    def load_ebpf_program(self, program_path) -> str:
        """
        Load eBPF C program from file.

        Args:
            program_path: Path to the C program file

        Returns:
            Program source code as string
        """
        with open(program_path, 'r') as f:
            return f.read()

    def initialize(self):
        """
        Compile the eBPF program and attach all probes.
        """
        from bcc import BPF

        self.logger.info(f"Initializing I/O tracer (pid filter: {self.pid or 'none'})")

        program = self.load_ebpf_program(self.ebpf_dir / 'io_tracer.c')
        cflags = [f"-DTARGET_PID={self.pid}"] if self.pid else []

        try:
            self.bpf = BPF(text=program, cflags=cflags)
            self.logger.info("eBPF program loaded successfully")
        except Exception as e:
            raise TracerError(f"Failed to load eBPF program: {e}") from e

        self._attach_probes()

    def _attach_probes(self):
        """
        Attach tracepoints and kprobes/kretprobes.
        Tries multiple kernel function name variants for compatibility.
        """
        for tracepoint, fn_name in self.BLOCK_TRACEPOINTS.items():
            try:
                self.bpf.attach_tracepoint(tp=tracepoint, fn_name=fn_name)
                self.attached_probes.append({'kind': 'tracepoint', 'target': tracepoint})
                self.logger.info(f"✓ Attached {tracepoint}")
            except Exception as e:
                self.logger.warning(f"✗ Failed to attach {tracepoint}: {e}")

        for op, kernel_funcs in self.VFS_KERNEL_FUNCS.items():
            attached = False

            for kernel_func in kernel_funcs:
                try:
                    self.bpf.attach_kprobe(event=kernel_func, fn_name=f"trace_vfs_{op}_entry")
                    self.bpf.attach_kretprobe(event=kernel_func, fn_name=f"trace_vfs_{op}_exit")
                except Exception:
                    continue

                self.attached_probes.append({'kind': 'kprobe', 'target': kernel_func})
                self.logger.info(f"✓ Attached probes to {op} (via {kernel_func})")
                attached = True
                break

            if not attached:
                self.logger.error(
                    f"✗ Failed to attach to vfs {op}. Tried: {', '.join(kernel_funcs)}"
                )

        if not self.attached_probes:
            raise TracerError("Failed to attach any I/O probes")

        self.logger.info(f"Successfully attached {len(self.attached_probes)} probes")

    def register_event_handler(self, event_type: str, handler: Callable):
        """
        Register a callback handler for specific event types.

        Args:
            event_type: Type of event ('io')
            handler: Callback function to process events
        """
        self.event_handlers[event_type] = handler

    def open(self):
        """
        Open the perf buffer. Safe to call more than once.
        """
        if self.bpf is None:
            raise TracerError("Tracer not initialized. Call initialize() first.")

        self.running = True
        if self.buffer_open:
            return

        self.bpf["events"].open_perf_buffer(self._handle_event, page_cnt=self.buffer_size)
        self.buffer_open = True
        self.logger.info("Perf buffer opened")

    def poll(self, timeout: int = 100):
        """
        Poll the perf buffer once, dispatching any pending records.

        Args:
            timeout: Poll timeout in milliseconds
        """
        if self.running:
            self.bpf.perf_buffer_poll(timeout=timeout)

    def _handle_event(self, cpu, data, size):
        """
        Internal handler for perf buffer events.
        Dispatches events to registered handlers.
        """
        event = self.bpf["events"].event(data)

        if 'io' in self.event_handlers:
            self.event_handlers['io'](event)

    def stop(self):
        """
        Stop the tracing session and detach probes.
        """
        if not self.running and not self.attached_probes:
            return

        self.logger.info("Stopping I/O tracer...")
        self.running = False

        if self.bpf:
            for probe in self.attached_probes:
                try:
                    if probe['kind'] == 'tracepoint':
                        self.bpf.detach_tracepoint(tp=probe['target'])
                    else:
                        self.bpf.detach_kprobe(event=probe['target'])
                        self.bpf.detach_kretprobe(event=probe['target'])
                    self.logger.debug(f"Detached {probe['target']}")
                except Exception as e:
                    self.logger.warning(f"Failed to detach {probe['target']}: {e}")

        self.attached_probes = []
        self.logger.info("Tracer stopped")
