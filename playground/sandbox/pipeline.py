"""Compile-then-run pipeline for C submissions.

The pipeline works on a materialized ``Workspace``:

1. compile every ``.c`` file in it with the configured compiler into ``app``;
2. run ``./app`` with stdin taken from the workspace input file, if any.

Both phases read stdout/stderr incrementally into capped buffers, so a
runaway program can't grow the orchestrator's memory, and both phases have a
wall-clock deadline. Batch runs are additionally wrapped in an outer hard
deadline in case something other than the program itself hangs.
"""

import asyncio
import logging
import os
import shutil
from collections.abc import Sequence
from dataclasses import dataclass

from playground.config import SandboxSettings
from playground.models.execution import ExecutionResult
from playground.sandbox.process import (
    EXIT_COMPILE_FAILURE,
    EXIT_OK,
    EXIT_TIMEOUT,
    CappedBuffer,
    drain_into,
    kill_process,
    normalize_exit_code,
)
from playground.sandbox.workspace import Workspace

_logger = logging.getLogger("playground.sandbox.pipeline")

BINARY_NAME = "app"
DEFAULT_PATH = "/usr/local/bin:/usr/bin:/bin"
# How long to keep reading pipes after the process is gone.
READ_GRACE_SEC = 1.0

NO_SOURCES_MESSAGE = "No .c source files found to compile."
COMPILE_TIMEOUT_NOTICE = "\n[System] Compilation timed out."
RUN_TIMEOUT_NOTICE = "\n\n[System] Timeout: the program exceeded {seconds:g}s and was killed."


class InfrastructureFault(Exception):
    """The sandbox could not attempt the job (not the user program's fault)."""


@dataclass
class CompileOutcome:
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == EXIT_OK

    @property
    def diagnostics(self) -> str:
        return self.stderr or self.stdout


def timeout_result(stdout: str, stderr: str, seconds: float) -> ExecutionResult:
    return ExecutionResult(
        success=True,
        stdout=stdout,
        stderr=stderr + RUN_TIMEOUT_NOTICE.format(seconds=seconds),
        exit_code=EXIT_TIMEOUT,
        signal="SIGKILL",
    )


class ProcessPipeline:
    def __init__(
        self,
        *,
        compiler: str = "gcc",
        compiler_flags: Sequence[str] = ("-Wall", "-Wextra", "-pthread"),
        link_flags: Sequence[str] = ("-lm",),
        compile_timeout: float = 10.0,
        run_timeout: float = 5.0,
        hard_deadline_slack: float = 2.0,
        output_cap_bytes: int = 100 * 1024,
        unbuffered_interactive: bool = True,
    ) -> None:
        self.compiler = compiler
        self.compiler_flags = list(compiler_flags)
        self.link_flags = list(link_flags)
        self.compile_timeout = compile_timeout
        self.run_timeout = run_timeout
        self.hard_deadline_slack = hard_deadline_slack
        self.output_cap_bytes = output_cap_bytes
        self.unbuffered_interactive = unbuffered_interactive

    @classmethod
    def from_settings(cls, settings: SandboxSettings) -> "ProcessPipeline":
        return cls(
            compiler=settings.compiler,
            compiler_flags=settings.compiler_flag_list,
            link_flags=settings.link_flag_list,
            compile_timeout=settings.compile_timeout_sec,
            run_timeout=settings.run_timeout_sec,
            hard_deadline_slack=settings.hard_deadline_slack_sec,
            output_cap_bytes=settings.output_cap_bytes,
            unbuffered_interactive=settings.unbuffered_interactive,
        )

    @property
    def hard_deadline(self) -> float:
        return self.compile_timeout + self.run_timeout + self.hard_deadline_slack

    # ---- argv / environment ----

    def source_files(self, workspace: Workspace) -> list[str]:
        # Headers are pulled in through #include, only translation units are compiled.
        return sorted(p.name for p in workspace.path.iterdir() if p.is_file() and p.suffix == ".c")

    def compile_argv(self, sources: Sequence[str]) -> list[str]:
        return [self.compiler, *self.compiler_flags, "-o", BINARY_NAME, *sources, *self.link_flags]

    def program_argv(self, workspace: Workspace, args: Sequence[str] = (), interactive: bool = False) -> list[str]:
        argv = [f"./{BINARY_NAME}", *args]
        if interactive and self.unbuffered_interactive:
            stdbuf = shutil.which("stdbuf")
            if stdbuf:
                argv = [stdbuf, "-i0", "-o0", "-e0", *argv]
        return argv

    def environment(self, workspace: Workspace, interactive: bool = False) -> dict[str, str]:
        env = {
            "PATH": os.environ.get("PATH", DEFAULT_PATH),
            "HOME": str(workspace.path),
            "LANG": "C.UTF-8",
        }
        if "TMPDIR" in os.environ:
            env["TMPDIR"] = os.environ["TMPDIR"]
        if interactive:
            env["TERM"] = "dumb"
        return env

    # ---- process plumbing ----

    async def _spawn(self, argv: Sequence[str], workspace: Workspace, *, stdin, interactive: bool = False) -> asyncio.subprocess.Process:
        try:
            return await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(workspace.path),
                stdin=stdin,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self.environment(workspace, interactive=interactive),
                start_new_session=True,
            )
        except OSError as e:
            raise InfrastructureFault(f"could not start {os.path.basename(argv[0])}") from e

    async def _collect(self, proc: asyncio.subprocess.Process, timeout: float) -> tuple[CappedBuffer, CappedBuffer, bool]:
        """Wait for ``proc`` under a deadline while draining both pipes."""
        stdout = CappedBuffer(self.output_cap_bytes)
        stderr = CappedBuffer(self.output_cap_bytes)
        readers = [
            asyncio.create_task(drain_into(proc.stdout, stdout)),
            asyncio.create_task(drain_into(proc.stderr, stderr)),
        ]
        timed_out = False
        try:
            try:
                await asyncio.wait_for(proc.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                timed_out = True
                kill_process(proc)
                await proc.wait()
            await asyncio.wait(readers, timeout=READ_GRACE_SEC)
        finally:
            for reader in readers:
                reader.cancel()
            # Also covers cancellation from outside and anything the program forked.
            kill_process(proc)
        return stdout, stderr, timed_out

    def _clip(self, text: str) -> str:
        # Decoding may have widened a split or invalid byte into U+FFFD.
        data = text.encode("utf-8")
        if len(data) <= self.output_cap_bytes:
            return text
        return data[: self.output_cap_bytes].decode("utf-8", errors="ignore")

    # ---- phases ----

    async def compile(self, workspace: Workspace) -> CompileOutcome:
        sources = self.source_files(workspace)
        if not sources:
            return CompileOutcome(exit_code=EXIT_COMPILE_FAILURE, stderr=NO_SOURCES_MESSAGE)

        proc = await self._spawn(self.compile_argv(sources), workspace, stdin=asyncio.subprocess.DEVNULL)
        stdout, stderr, timed_out = await self._collect(proc, self.compile_timeout)
        if timed_out:
            _logger.info("pipeline.compile_timeout job=%s", workspace.job_id)
            return CompileOutcome(
                exit_code=EXIT_TIMEOUT,
                stdout=stdout.text(),
                stderr=stderr.text() + COMPILE_TIMEOUT_NOTICE,
                timed_out=True,
            )
        if proc.returncode != 0:
            _logger.debug("pipeline.compile_failed job=%s rc=%s", workspace.job_id, proc.returncode)
            return CompileOutcome(exit_code=EXIT_COMPILE_FAILURE, stdout=stdout.text(), stderr=stderr.text())
        return CompileOutcome(exit_code=EXIT_OK, stdout=stdout.text(), stderr=stderr.text())

    async def execute(self, workspace: Workspace, args: Sequence[str] = (), diagnostics: str = "") -> ExecutionResult:
        """Run the compiled binary once, batch style.

        ``diagnostics`` (compiler warnings) is prepended to the program's
        stderr before the size cap is applied.
        """
        argv = self.program_argv(workspace, args)
        if workspace.has_stdin():
            with workspace.stdin_path.open("rb") as stdin:
                proc = await self._spawn(argv, workspace, stdin=stdin)
        else:
            proc = await self._spawn(argv, workspace, stdin=asyncio.subprocess.DEVNULL)

        stdout, stderr, timed_out = await self._collect(proc, self.run_timeout)
        if timed_out:
            _logger.info("pipeline.run_timeout job=%s timeout=%ss", workspace.job_id, self.run_timeout)
            return timeout_result(self._clip(stdout.text()), self._clip(diagnostics + stderr.text()), self.run_timeout)

        exit_code, signal_name = normalize_exit_code(proc.returncode)
        return ExecutionResult(
            success=True,
            stdout=self._clip(stdout.text()),
            stderr=self._clip(diagnostics + stderr.text()),
            exit_code=exit_code,
            signal=signal_name,
        )

    async def run(self, workspace: Workspace, args: Sequence[str] = ()) -> ExecutionResult:
        """Compile and execute under the outer hard deadline."""
        try:
            return await asyncio.wait_for(self._compile_and_execute(workspace, args), timeout=self.hard_deadline)
        except asyncio.TimeoutError:
            _logger.warning("pipeline.hard_deadline job=%s deadline=%ss", workspace.job_id, self.hard_deadline)
            return timeout_result("", "", self.hard_deadline)

    async def _compile_and_execute(self, workspace: Workspace, args: Sequence[str]) -> ExecutionResult:
        outcome = await self.compile(workspace)
        if not outcome.ok:
            return ExecutionResult(
                success=True,
                stdout=self._clip(outcome.stdout),
                stderr=self._clip(outcome.stderr),
                exit_code=outcome.exit_code,
                signal="SIGKILL" if outcome.timed_out else None,
            )
        return await self.execute(workspace, args, diagnostics=outcome.stderr)

    async def spawn(self, workspace: Workspace, args: Sequence[str] = ()) -> asyncio.subprocess.Process:
        """Start the compiled binary with all three standard streams piped."""
        argv = self.program_argv(workspace, args, interactive=True)
        return await self._spawn(argv, workspace, stdin=asyncio.subprocess.PIPE, interactive=True)
