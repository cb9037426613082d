# tests/test_tracer.py - Tests for tracer module
"""
Unit tests for the IOTracer class.
"""

import pytest
from unittest.mock import Mock
from ioeye.collector.tracer import IOTracer
from ioeye.exceptions import TracerError


class TestIOTracer:
    """Test cases for IOTracer"""

    def test_tracer_initialization(self):
        """Test tracer initialization with config"""
        config = {
            'pid': 1234,
            'buffer_size': 128
        }

        tracer = IOTracer(config)

        assert tracer.pid == 1234
        assert tracer.buffer_size == 128
        assert tracer.bpf is None
        assert tracer.running is False
        assert tracer.attached_probes == []

    def test_default_buffer_size(self):
        tracer = IOTracer({})

        assert tracer.pid is None
        assert tracer.buffer_size == 256

    def test_ebpf_program_is_packaged(self):
        """Test that the eBPF source ships next to the collector"""
        tracer = IOTracer({})
        program = tracer.load_ebpf_program(tracer.ebpf_dir / 'io_tracer.c')

        for fn_name in IOTracer.BLOCK_TRACEPOINTS.values():
            assert fn_name in program
        assert 'trace_vfs_read_entry' in program
        assert 'trace_vfs_write_exit' in program

    def test_register_event_handler(self):
        """Test registering event handlers"""
        tracer = IOTracer({})

        handler = Mock()
        tracer.register_event_handler('io', handler)

        assert 'io' in tracer.event_handlers
        assert tracer.event_handlers['io'] == handler

    def test_open_before_initialize(self):
        """Test that the perf buffer cannot be opened without a program"""
        tracer = IOTracer({})

        with pytest.raises(TracerError):
            tracer.open()

    def test_handle_event_dispatch(self):
        """Test that perf records are decoded and passed to the handler"""
        tracer = IOTracer({})
        tracer.bpf = {'events': Mock()}
        tracer.bpf['events'].event.return_value = 'decoded'

        handler = Mock()
        tracer.register_event_handler('io', handler)
        tracer._handle_event(0, b'raw', 3)

        handler.assert_called_once_with('decoded')

    def test_stop_detaches_probes(self):
        tracer = IOTracer({})
        tracer.bpf = Mock()
        tracer.running = True
        tracer.attached_probes = [
            {'kind': 'tracepoint', 'target': 'block:block_rq_issue'},
            {'kind': 'kprobe', 'target': 'vfs_read'},
        ]

        tracer.stop()

        tracer.bpf.detach_tracepoint.assert_called_once_with(tp='block:block_rq_issue')
        tracer.bpf.detach_kprobe.assert_called_once_with(event='vfs_read')
        tracer.bpf.detach_kretprobe.assert_called_once_with(event='vfs_read')
        assert tracer.running is False
        assert tracer.attached_probes == []

    def test_stop_without_start(self):
        """Test stopping a tracer that never started"""
        tracer = IOTracer({})
        tracer.stop()

        assert tracer.running is False
