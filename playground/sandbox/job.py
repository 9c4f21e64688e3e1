"""Job ownership and the single cleanup path.

Every way a job can end (normal exit, compile failure, timeout, client
disconnect, unexpected error) goes through ``Job.finalize``. It stops the
process and timer right away and hands the job to the ``Janitor``, which
removes the workspace in the background and only then gives the admission
slot back.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path

from playground.models.execution import SubmittedFile
from playground.sandbox.admission import AdmissionTicket
from playground.sandbox.process import kill_process
from playground.sandbox.workspace import Workspace

_logger = logging.getLogger("playground.sandbox.job")


@dataclass
class Job:
    workspace: Workspace
    files: list[SubmittedFile]
    stdin: str | None = None
    args: list[str] = field(default_factory=list)
    ticket: AdmissionTicket | None = None
    process: asyncio.subprocess.Process | None = None
    timer: asyncio.TimerHandle | None = None
    finalized: bool = False

    @classmethod
    def open(
        cls,
        jobs_dir: Path,
        files: list[SubmittedFile],
        *,
        stdin: str | None = None,
        args: list[str] | None = None,
        ticket: AdmissionTicket | None = None,
    ) -> "Job":
        return cls(workspace=Workspace(jobs_dir), files=files, stdin=stdin, args=list(args or []), ticket=ticket)

    @property
    def id(self) -> str:
        return self.workspace.job_id

    def prepare(self) -> list[str]:
        """Create the workspace and write the job's files into it."""
        self.workspace.create()
        return self.workspace.materialize(self.files, self.stdin)

    def finalize(self, janitor: "Janitor") -> bool:
        """Stop everything the job owns. Returns False if already finalized."""
        if self.finalized:
            return False
        self.finalized = True
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None
        if self.process is not None:
            kill_process(self.process)
        janitor.schedule(self)
        return True


class Janitor:
    """Background teardown of finished jobs."""

    def __init__(self, delay: float = 0.5) -> None:
        self.delay = delay
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def schedule(self, job: Job) -> asyncio.Task:
        task = asyncio.create_task(self._teardown(job), name=f"teardown-{job.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _teardown(self, job: Job) -> None:
        try:
            # Give a just-killed child time to let go of its files.
            if self.delay:
                await asyncio.sleep(self.delay)
            if job.process is not None and job.process.returncode is None:
                try:
                    await asyncio.wait_for(job.process.wait(), timeout=2.0)
                except asyncio.TimeoutError:
                    _logger.warning("janitor.process_lingering job=%s pid=%s", job.id, job.process.pid)
            await asyncio.to_thread(job.workspace.destroy)
        finally:
            if job.ticket is not None:
                job.ticket.release()
            _logger.debug("janitor.done job=%s", job.id)

    async def drain(self) -> None:
        """Wait for every scheduled teardown to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
