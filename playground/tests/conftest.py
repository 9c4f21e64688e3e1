import os
import sys
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

import shutil
import time

import pytest
from fastapi.testclient import TestClient
import fakeredis.aioredis as fakeredis

from playground.config import clear_settings_cache
from playground.sandbox import CompileOutcome, ProcessPipeline

requires_gcc = pytest.mark.skipif(shutil.which("gcc") is None, reason="gcc not installed")


class _AwaitableRedis:
    def __init__(self, client):
        self._client = client

    def __await__(self):
        async def _coro():
            return self._client

        return _coro().__await__()


class ScriptPipeline(ProcessPipeline):
    """Runs ``main.py`` with the test interpreter instead of compiling C.

    Everything after the compile step (spawning, deadlines, output caps,
    stdin handling, cleanup) is the real pipeline code.
    """

    async def compile(self, workspace):
        if not (workspace.path / "main.py").is_file():
            return CompileOutcome(exit_code=1, stderr="main.py: No such file or directory")
        return CompileOutcome(exit_code=0)

    def program_argv(self, workspace, args=(), interactive=False):
        return [sys.executable, "-u", "main.py", *args]


def script(source: str, name: str = "main.py") -> list[dict]:
    return [{"name": name, "content": source}]


# Forks a child that outlives the program; the program prints the child's pid.
FORKS_SLEEPER = (
    "import os, time\n"
    "pid = os.fork()\n"
    "if pid == 0:\n"
    "    time.sleep(30)\n"
    "    os._exit(0)\n"
    "print(pid, flush=True)\n"
)


def pid_alive(pid: int) -> bool:
    """False once ``pid`` is gone or only a zombie is left of it."""
    try:
        with open(f"/proc/{pid}/stat") as f:
            stat = f.read()
    except FileNotFoundError:
        return False
    except OSError:
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return False
        return True
    return stat.rpartition(")")[2].split()[0] != "Z"


def wait_for_exit(pid: int, timeout: float = 3.0) -> bool:
    deadline = time.monotonic() + timeout
    while pid_alive(pid):
        if time.monotonic() > deadline:
            return False
        time.sleep(0.02)
    return True


@pytest.fixture
def jobs_dir(tmp_path):
    path = tmp_path / "jobs"
    path.mkdir()
    return path


@pytest.fixture
def make_script_pipeline():
    def _make(**kwargs):
        kwargs.setdefault("compile_timeout", 5.0)
        kwargs.setdefault("run_timeout", 5.0)
        return ScriptPipeline(**kwargs)

    return _make


@pytest.fixture
def client(monkeypatch, tmp_path):
    import playground.lifespan as lifespan
    import playground.main as main

    monkeypatch.setenv("SANDBOX_JOBS_DIR", str(tmp_path / "jobs"))
    monkeypatch.setenv("SANDBOX_CLEANUP_DELAY_SEC", "0")
    monkeypatch.setenv("REDIS_ENABLED", "1")
    clear_settings_cache()

    def fake_redis_constructor(*_args, **_kwargs):
        fake = fakeredis.FakeRedis(decode_responses=True)
        return _AwaitableRedis(fake)

    monkeypatch.setattr(lifespan.redis, "Redis", fake_redis_constructor)

    with TestClient(main.app) as c:
        yield c

    clear_settings_cache()
