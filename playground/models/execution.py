from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field


def utc_timestamp() -> str:
    return datetime.now(UTC).isoformat()


class SubmittedFile(BaseModel):
    name: str
    content: str


class ExecuteRequest(BaseModel):
    files: list[SubmittedFile]
    stdin: str | None = None
    args: list[str] = Field(default_factory=list)


class ExecutionResult(BaseModel):
    """Outcome of one batch job.

    ``success`` reports whether the sandbox managed to attempt the job, not
    whether the user's program succeeded: a program that compiled and exited
    nonzero is still ``success=True`` with its own exit code.
    """

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    stdout: str = ""
    stderr: str = ""
    exit_code: int = Field(default=0, alias="exitCode")
    signal: str | None = None
    timestamp: str = Field(default_factory=utc_timestamp)
    error: str | None = None


class RuntimeInfo(BaseModel):
    language: str
    version: str
    aliases: list[str] = []


class RuntimesResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    available: bool
    c: RuntimeInfo | None = None
    all_runtimes: int = Field(default=0, alias="allRuntimes")


class AdmissionStats(BaseModel):
    active: int
    queued: int
    limit: int


class HealthResponse(BaseModel):
    status: str
    mode: str
    timestamp: str
    redis: str
    admission: dict[str, AdmissionStats]
