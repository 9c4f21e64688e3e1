import asyncio
import logging

from playground.models.execution import RuntimeInfo

_logger = logging.getLogger("playground.sandbox.runtimes")

PROBE_TIMEOUT_SEC = 3.0


async def probe_compiler(compiler: str = "gcc") -> RuntimeInfo | None:
    """Ask the compiler for its version; None if it can't be run."""
    try:
        proc = await asyncio.create_subprocess_exec(
            compiler,
            "--version",
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
    except OSError as e:
        _logger.warning("runtimes.probe_failed compiler=%s err=%r", compiler, e)
        return None

    try:
        stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=PROBE_TIMEOUT_SEC)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        _logger.warning("runtimes.probe_timeout compiler=%s", compiler)
        return None

    if proc.returncode != 0:
        return None
    lines = stdout.decode("utf-8", errors="replace").strip().splitlines()
    version = lines[0].strip() if lines else compiler
    return RuntimeInfo(language="c", version=version, aliases=[compiler])
