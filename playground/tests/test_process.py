"""Tests for low-level process helpers."""

import asyncio
import signal
import sys

import pytest

from playground.sandbox.process import CappedBuffer, kill_process, normalize_exit_code


class TestCappedBuffer:
    def test_under_cap(self):
        buf = CappedBuffer(10)
        assert buf.feed(b"hello") == b"hello"
        assert buf.getvalue() == b"hello"
        assert not buf.truncated

    def test_exactly_at_cap(self):
        buf = CappedBuffer(5)
        buf.feed(b"hello")
        assert buf.getvalue() == b"hello"
        assert not buf.truncated

    def test_over_cap_keeps_prefix_and_counts_rest(self):
        buf = CappedBuffer(4)
        assert buf.feed(b"abc") == b"abc"
        assert buf.feed(b"defg") == b"d"
        assert buf.feed(b"hij") == b""
        assert buf.getvalue() == b"abcd"
        assert buf.total == 10
        assert buf.truncated

    def test_text_replaces_split_characters(self):
        buf = CappedBuffer(1)
        buf.feed("é".encode())
        assert buf.text() == "�"


@pytest.mark.parametrize(
    "returncode, expected",
    [
        (0, (0, None)),
        (3, (3, None)),
        (-signal.SIGSEGV, (128 + signal.SIGSEGV, "SIGSEGV")),
        (-signal.SIGKILL, (128 + signal.SIGKILL, "SIGKILL")),
        (None, (-1, None)),
    ],
)
def test_normalize_exit_code(returncode, expected):
    assert normalize_exit_code(returncode) == expected


@pytest.mark.asyncio
async def test_kill_process_stops_the_group():
    proc = await asyncio.create_subprocess_exec(
        sys.executable, "-c", "import time; time.sleep(30)", start_new_session=True
    )
    kill_process(proc)
    returncode = await asyncio.wait_for(proc.wait(), timeout=5)
    assert returncode == -signal.SIGKILL

    # Already reaped: nothing to do.
    kill_process(proc)
