import hashlib
import logging
import time
from collections.abc import Sequence
from pathlib import Path

from playground.models.execution import ExecutionResult, SubmittedFile
from playground.sandbox.admission import AdmissionQueue
from playground.sandbox.job import Janitor, Job
from playground.sandbox.pipeline import ProcessPipeline
from playground.sandbox.process import EXIT_POLICY_BLOCK
from playground.sandbox.screener import policy_message, screen_files

_logger = logging.getLogger("playground.sandbox")

EXECUTION_FAILED_MESSAGE = "Code execution failed."


def _sources_hash(files: Sequence[SubmittedFile]) -> str:
    digest = hashlib.sha256()
    for f in files:
        digest.update(f.name.encode())
        digest.update(b"\0")
        digest.update(f.content.encode())
    return digest.hexdigest()[:16]


class BatchExecutor:
    """One-shot execution: screen, wait for a slot, compile, run, clean up."""

    def __init__(
        self,
        admission: AdmissionQueue,
        pipeline: ProcessPipeline,
        janitor: Janitor,
        jobs_dir: Path,
    ) -> None:
        self.admission = admission
        self.pipeline = pipeline
        self.janitor = janitor
        self.jobs_dir = Path(jobs_dir)

    async def execute(
        self,
        files: Sequence[SubmittedFile],
        stdin: str | None = None,
        args: Sequence[str] | None = None,
    ) -> ExecutionResult:
        files = list(files)
        start = time.monotonic()
        code_hash = _sources_hash(files)

        reason = screen_files(files)
        if reason:
            _logger.info("sandbox.blocked code_hash=%s reason=%r", code_hash, reason)
            return ExecutionResult(success=True, stderr=policy_message(reason), exit_code=EXIT_POLICY_BLOCK)

        ticket = await self.admission.acquire()
        job = Job.open(self.jobs_dir, files, stdin=stdin, args=list(args or []), ticket=ticket)
        try:
            job.prepare()
            result = await self.pipeline.run(job.workspace, job.args)
        except Exception:
            _logger.exception("sandbox.infrastructure_fault job=%s", job.id)
            result = ExecutionResult(success=False, exit_code=-1, error=EXECUTION_FAILED_MESSAGE)
        finally:
            job.finalize(self.janitor)

        _logger.info(
            "sandbox.execution job=%s success=%s exit=%s duration=%dms code_hash=%s",
            job.id, result.success, result.exit_code, int((time.monotonic() - start) * 1000), code_hash,
        )
        return result
