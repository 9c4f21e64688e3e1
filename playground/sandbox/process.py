"""Low-level plumbing shared by the batch and interactive flows.

Children are started as leaders of their own session, so everything they
fork lands in one process group that ``kill_process`` can take down at
once. Output pipes are read in chunks into ``CappedBuffer``s that stop
storing at the cap but keep draining.
"""

import asyncio
import logging
import os
import signal
from collections.abc import AsyncIterator

_logger = logging.getLogger("playground.sandbox.process")

# Exit codes reported to clients. Anything else is the program's own status.
EXIT_OK = 0
EXIT_COMPILE_FAILURE = 1
EXIT_TIMEOUT = 124
EXIT_POLICY_BLOCK = 126

CHUNK_SIZE = 64 * 1024


async def iter_chunks(stream: asyncio.StreamReader | None, chunk_size: int = CHUNK_SIZE) -> AsyncIterator[bytes]:
    """Yield raw chunks from a subprocess pipe until EOF."""
    if stream is None:
        return
    while chunk := await stream.read(chunk_size):
        yield chunk


class CappedBuffer:
    """Accumulates at most ``cap`` bytes and counts the rest."""

    def __init__(self, cap: int) -> None:
        self.cap = cap
        self.total = 0
        self._data = bytearray()

    @property
    def truncated(self) -> bool:
        return self.total > len(self._data)

    def feed(self, chunk: bytes) -> bytes:
        """Keep what fits and return the accepted part."""
        self.total += len(chunk)
        room = self.cap - len(self._data)
        if room <= 0:
            return b""
        accepted = chunk[:room]
        self._data += accepted
        return accepted

    def getvalue(self) -> bytes:
        return bytes(self._data)

    def text(self) -> str:
        return self._data.decode("utf-8", errors="replace")


async def drain_into(stream: asyncio.StreamReader | None, buffer: CappedBuffer) -> None:
    # Keep reading past the cap so the child never blocks on a full pipe.
    async for chunk in iter_chunks(stream):
        buffer.feed(chunk)


def kill_process(proc: asyncio.subprocess.Process) -> None:
    """SIGKILL the process group the child leads; falls back to the child.

    The group outlives its leader: anything the program forked is still in
    it after the child itself has exited, so the group is signalled even
    when ``proc`` has already been reaped.
    """
    try:
        os.killpg(proc.pid, signal.SIGKILL)
        return
    except ProcessLookupError:
        pass
    except PermissionError as e:
        _logger.debug("process.killpg_denied pid=%s err=%r", proc.pid, e)
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass


def normalize_exit_code(returncode: int | None) -> tuple[int, str | None]:
    """Map a subprocess return code to (exit code, signal name).

    Deaths by signal follow the shell convention ``128 + signum``.
    """
    if returncode is None:
        return -1, None
    if returncode >= 0:
        return returncode, None
    signum = -returncode
    try:
        name = signal.Signals(signum).name
    except ValueError:
        name = None
    return 128 + signum, name
