"""Sandboxed execution engine for submitted C programs.

Layers, leaves first:

- ``screener``: static rejection of obviously disallowed source text
- ``admission``: bounded, FIFO admission of concurrent jobs
- ``workspace``: per-job scratch directories
- ``pipeline``: compile and run as external processes under deadlines
- ``job``: the single cleanup path shared by every flow
- ``batch`` / ``interactive``: the two ways a job is driven
"""

from playground.sandbox.admission import AdmissionQueue, AdmissionTicket
from playground.sandbox.batch import BatchExecutor
from playground.sandbox.interactive import InteractiveSession, SessionState
from playground.sandbox.job import Janitor, Job
from playground.sandbox.pipeline import CompileOutcome, InfrastructureFault, ProcessPipeline
from playground.sandbox.process import (
    EXIT_COMPILE_FAILURE,
    EXIT_OK,
    EXIT_POLICY_BLOCK,
    EXIT_TIMEOUT,
)
from playground.sandbox.screener import screen, screen_files
from playground.sandbox.workspace import Workspace, sanitize_name

__all__ = [
    "AdmissionQueue",
    "AdmissionTicket",
    "BatchExecutor",
    "CompileOutcome",
    "EXIT_COMPILE_FAILURE",
    "EXIT_OK",
    "EXIT_POLICY_BLOCK",
    "EXIT_TIMEOUT",
    "InfrastructureFault",
    "InteractiveSession",
    "Janitor",
    "Job",
    "ProcessPipeline",
    "SessionState",
    "Workspace",
    "sanitize_name",
    "screen",
    "screen_files",
]
