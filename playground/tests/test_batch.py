"""Tests for one-shot batch execution."""

import asyncio

import pytest

from conftest import FORKS_SLEEPER, ScriptPipeline, wait_for_exit
from playground.models.execution import ExecutionResult, SubmittedFile
from playground.sandbox.admission import AdmissionQueue
from playground.sandbox.batch import EXECUTION_FAILED_MESSAGE, BatchExecutor
from playground.sandbox.job import Janitor
from playground.sandbox.pipeline import ProcessPipeline


def files_for(source: str, name: str = "main.py") -> list[SubmittedFile]:
    return [SubmittedFile(name=name, content=source)]


@pytest.fixture
def make_executor(jobs_dir, make_script_pipeline):
    def _make(pipeline=None, limit: int = 2, delay: float = 0.0) -> BatchExecutor:
        return BatchExecutor(
            AdmissionQueue(max_concurrency=limit, name="batch"),
            pipeline or make_script_pipeline(),
            Janitor(delay=delay),
            jobs_dir,
        )

    return _make


class TestBatchExecutor:
    @pytest.mark.asyncio
    async def test_successful_run(self, make_executor, jobs_dir):
        executor = make_executor()
        result = await executor.execute(files_for("print('hi', end='')\n"))
        assert result.success
        assert result.stdout == "hi"
        assert result.stderr == ""
        assert result.exit_code == 0
        assert result.error is None

        await executor.janitor.drain()
        assert list(jobs_dir.iterdir()) == []
        assert executor.admission.active == 0

    @pytest.mark.asyncio
    async def test_nonzero_exit_is_still_success(self, make_executor):
        result = await make_executor().execute(files_for("raise SystemExit(7)\n"))
        assert result.success
        assert result.exit_code == 7

    @pytest.mark.asyncio
    async def test_stdin_and_args(self, make_executor):
        source = "import sys\nprint(input(), sys.argv[1:])\n"
        result = await make_executor().execute(files_for(source), stdin="hello\n", args=["-v"])
        assert result.stdout == "hello ['-v']\n"

    @pytest.mark.asyncio
    async def test_timeout(self, make_executor, make_script_pipeline):
        executor = make_executor(make_script_pipeline(run_timeout=0.5))
        result = await executor.execute(files_for("while True:\n    pass\n"))
        assert result.success
        assert result.exit_code == 124
        await executor.janitor.drain()
        assert executor.admission.active == 0

    @pytest.mark.asyncio
    async def test_policy_block_never_touches_the_sandbox(self, jobs_dir, make_executor):
        class ExplodingPipeline(ScriptPipeline):
            async def run(self, workspace, args=()):
                raise AssertionError("pipeline must not run")

        executor = make_executor(ExplodingPipeline())
        result = await executor.execute(files_for('int main(void) { system("rm -rf /"); }', name="main.c"))

        assert result.success
        assert result.exit_code == 126
        assert result.stdout == ""
        assert "[Security]" in result.stderr
        assert list(jobs_dir.iterdir()) == []
        assert executor.admission.stats()["active"] == 0

    @pytest.mark.asyncio
    async def test_infrastructure_fault_is_opaque(self, jobs_dir, make_executor):
        pipeline = ProcessPipeline(compiler="definitely-not-a-compiler-7f3a")
        executor = make_executor(pipeline)
        result = await executor.execute(files_for("int main(void){return 0;}", name="main.c"))

        assert result.success is False
        assert result.error == EXECUTION_FAILED_MESSAGE
        assert "definitely-not-a-compiler" not in (result.stderr + (result.error or ""))

        await executor.janitor.drain()
        assert list(jobs_dir.iterdir()) == []
        assert executor.admission.active == 0

    @pytest.mark.asyncio
    async def test_slot_held_until_workspace_removed(self, jobs_dir, make_executor):
        executor = make_executor(limit=1, delay=0.3)
        await executor.execute(files_for("print(1)\n"))

        assert executor.admission.active == 1
        assert len(list(jobs_dir.iterdir())) == 1

        await executor.janitor.drain()
        assert executor.admission.active == 0
        assert list(jobs_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, make_executor):
        running = 0
        peak = 0

        class CountingPipeline(ScriptPipeline):
            async def run(self, workspace, args=()):
                nonlocal running, peak
                running += 1
                peak = max(peak, running)
                await asyncio.sleep(0.05)
                running -= 1
                return ExecutionResult(success=True, stdout=workspace.job_id)

        executor = make_executor(CountingPipeline(), limit=2)
        results = await asyncio.gather(*(executor.execute(files_for(f"print({n})\n")) for n in range(6)))

        assert peak == 2
        assert all(r.success for r in results)
        assert len({r.stdout for r in results}) == 6
        await executor.janitor.drain()
        assert executor.admission.stats() == {"active": 0, "queued": 0, "limit": 2}

    @pytest.mark.asyncio
    async def test_forked_children_do_not_outlive_the_job(self, make_executor):
        executor = make_executor()
        result = await executor.execute(files_for(FORKS_SLEEPER))
        assert result.exit_code == 0
        child = int(result.stdout.split()[0])

        await executor.janitor.drain()
        assert executor.admission.active == 0
        assert wait_for_exit(child), f"forked child {child} still running"
