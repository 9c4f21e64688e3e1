"""Interactive terminal sessions.

A session drives one job over a duplex message channel and moves through

    IDLE --init--> COMPILING --spawn--> RUNNING --exit/timeout--> TERMINATED

Policy blocks, compile failures, infrastructure faults and a dropped
connection all short-circuit to TERMINATED through the same cleanup. The
session does not know about WebSockets: it receives decoded messages through
``handle_message`` and reports events through the ``send`` coroutine it was
built with.
"""

import asyncio
import codecs
import logging
import uuid
from collections.abc import Awaitable, Callable
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter, ValidationError

from playground.events import TerminalEvent
from playground.models.execution import SubmittedFile
from playground.sandbox.admission import AdmissionQueue
from playground.sandbox.job import Janitor, Job
from playground.sandbox.pipeline import ProcessPipeline
from playground.sandbox.process import (
    EXIT_POLICY_BLOCK,
    EXIT_TIMEOUT,
    CappedBuffer,
    iter_chunks,
    kill_process,
    normalize_exit_code,
)
from playground.sandbox.screener import policy_message, screen_files

_logger = logging.getLogger("playground.sandbox.interactive")

SendFn = Callable[[TerminalEvent], Awaitable[None]]

_FILES = TypeAdapter(list[SubmittedFile])

PENDING_STDIN_LIMIT = 64 * 1024
STREAM_DRAIN_GRACE_SEC = 1.0

TIMEOUT_NOTICE = "\n[Timeout] The program exceeded {seconds:g}s and was stopped.\n"
OUTPUT_LIMIT_NOTICE = "\n[System] Output limit reached; further {stream} is discarded.\n"
INVALID_FILES_MESSAGE = "Invalid files."
SESSION_USED_MESSAGE = "This session already ran a program; open a new connection to run again."
INTERNAL_ERROR_MESSAGE = "Internal error while running the program."


class SessionState(str, Enum):
    IDLE = "idle"
    COMPILING = "compiling"
    RUNNING = "running"
    TERMINATED = "terminated"


class InteractiveSession:
    def __init__(
        self,
        send: SendFn,
        *,
        admission: AdmissionQueue,
        pipeline: ProcessPipeline,
        janitor: Janitor,
        jobs_dir: Path,
        run_timeout: float = 15.0,
        output_cap_bytes: int = 1024 * 1024,
        session_id: str | None = None,
    ) -> None:
        self.id = session_id or uuid.uuid4().hex[:12]
        self.admission = admission
        self.pipeline = pipeline
        self.janitor = janitor
        self.jobs_dir = Path(jobs_dir)
        self.run_timeout = run_timeout
        self.output_cap_bytes = output_cap_bytes

        self.state = SessionState.IDLE
        self.job: Job | None = None
        self._send = send
        self._send_lock = asyncio.Lock()
        self._task: asyncio.Task | None = None
        self._timed_out = False
        self._closed = False
        self._pending_stdin: list[bytes] = []
        self._pending_size = 0

    # ---- inbound ----

    async def handle_message(self, message: dict[str, Any]) -> None:
        kind = message.get("type")
        if kind == "init":
            await self._on_init(message.get("files"))
        elif kind == "stdin":
            await self._on_stdin(message.get("data"))
        else:
            _logger.debug("terminal.ignored session=%s type=%r", self.id, kind)

    async def _on_init(self, raw_files: Any) -> None:
        if self.state is not SessionState.IDLE:
            await self.emit({"type": "error", "message": SESSION_USED_MESSAGE})
            return
        try:
            files = _FILES.validate_python(raw_files)
        except ValidationError:
            await self.emit({"type": "error", "message": INVALID_FILES_MESSAGE})
            return

        self.state = SessionState.COMPILING
        self._task = asyncio.create_task(self._run(files), name=f"terminal-{self.id}")

    async def _on_stdin(self, data: Any) -> None:
        if not isinstance(data, str) or not data:
            return
        payload = data.encode("utf-8")
        if self.state is SessionState.COMPILING:
            # Typed ahead before the program started; delivered on spawn.
            if self._pending_size + len(payload) <= PENDING_STDIN_LIMIT:
                self._pending_stdin.append(payload)
                self._pending_size += len(payload)
            return
        if self.state is SessionState.RUNNING and self.job is not None and self.job.process is not None:
            await self._write_stdin(self.job.process, payload)

    async def _write_stdin(self, proc: asyncio.subprocess.Process, payload: bytes) -> None:
        if proc.stdin is None or proc.stdin.is_closing():
            return
        try:
            proc.stdin.write(payload)
            await proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            _logger.debug("terminal.stdin_closed session=%s", self.id)

    # ---- job flow ----

    async def _run(self, files: list[SubmittedFile]) -> None:
        try:
            reason = screen_files(files)
            if reason:
                _logger.info("terminal.blocked session=%s reason=%r", self.id, reason)
                await self.emit({"type": "compile_error", "data": policy_message(reason)})
                await self.emit({"type": "exit", "code": EXIT_POLICY_BLOCK})
                return

            ticket = await self.admission.acquire()
            self.job = Job.open(self.jobs_dir, files, ticket=ticket)
            self.job.prepare()

            outcome = await self.pipeline.compile(self.job.workspace)
            if not outcome.ok:
                await self.emit({"type": "compile_error", "data": outcome.diagnostics})
                await self.emit({"type": "exit", "code": outcome.exit_code})
                return

            proc = await self.pipeline.spawn(self.job.workspace)
            self.job.process = proc
            self.job.timer = asyncio.get_running_loop().call_later(self.run_timeout, self._on_deadline)
            returncode = await self._attach(proc)

            if self._timed_out:
                await self.emit({"type": "stderr", "data": TIMEOUT_NOTICE.format(seconds=self.run_timeout)})
                await self.emit({"type": "exit", "code": EXIT_TIMEOUT})
            else:
                code, _ = normalize_exit_code(returncode)
                await self.emit({"type": "exit", "code": code})
        except Exception:
            _logger.exception("terminal.infrastructure_fault session=%s", self.id)
            await self.emit({"type": "error", "message": INTERNAL_ERROR_MESSAGE})
        finally:
            self._terminate()

    async def _attach(self, proc: asyncio.subprocess.Process) -> int | None:
        """Forward output and typed-ahead input until the process exits."""
        pumps = [
            asyncio.create_task(self._forward(proc.stdout, "stdout")),
            asyncio.create_task(self._forward(proc.stderr, "stderr")),
        ]
        try:
            while self._pending_stdin:
                payload = self._pending_stdin.pop(0)
                await self._write_stdin(proc, payload)
            self._pending_size = 0
            self.state = SessionState.RUNNING

            returncode = await proc.wait()
            await asyncio.wait(pumps, timeout=STREAM_DRAIN_GRACE_SEC)
            return returncode
        finally:
            for pump in pumps:
                pump.cancel()

    async def _forward(self, stream: asyncio.StreamReader | None, kind: str) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        buffer = CappedBuffer(self.output_cap_bytes)
        notified = False
        async for chunk in iter_chunks(stream):
            accepted = buffer.feed(chunk)
            if accepted:
                text = decoder.decode(accepted)
                if text:
                    await self.emit({"type": kind, "data": text})
            if buffer.truncated and not notified:
                notified = True
                await self.emit({"type": "stderr", "data": OUTPUT_LIMIT_NOTICE.format(stream=kind)})
        tail = decoder.decode(b"", final=True)
        if tail and not notified:
            await self.emit({"type": kind, "data": tail})

    def _on_deadline(self) -> None:
        proc = self.job.process if self.job is not None else None
        if proc is None or proc.returncode is not None:
            return
        _logger.info("terminal.timeout session=%s job=%s timeout=%ss", self.id, self.job.id, self.run_timeout)
        self._timed_out = True
        kill_process(proc)

    def _terminate(self) -> None:
        self.state = SessionState.TERMINATED
        self._pending_stdin.clear()
        self._pending_size = 0
        if self.job is not None:
            self.job.finalize(self.janitor)

    # ---- outbound / lifecycle ----

    async def emit(self, event: TerminalEvent) -> None:
        if self._closed:
            return
        async with self._send_lock:
            try:
                await self._send(event)
            except Exception as e:
                # The peer is gone; close() will follow from the receive side.
                self._closed = True
                _logger.debug("terminal.send_failed session=%s err=%r", self.id, e)

    @property
    def timed_out(self) -> bool:
        return self._timed_out

    async def join(self) -> None:
        """Wait until the current job (if any) has reached TERMINATED."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def close(self) -> None:
        """Connection closed: stop the job and release everything it holds.

        Safe to call more than once and in any state.
        """
        self._closed = True
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        self._terminate()
