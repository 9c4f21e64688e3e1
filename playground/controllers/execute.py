from fastapi import APIRouter
from fastapi.responses import JSONResponse

from playground.dependencies import Executor, RateLimited
from playground.models.execution import ExecuteRequest, ExecutionResult

router = APIRouter(prefix="/api", tags=["execution"])


@router.post(
    "/execute",
    response_model=ExecutionResult,
    response_model_exclude_none=True,
    dependencies=[RateLimited],
)
async def execute(req: ExecuteRequest, executor: Executor):
    result = await executor.execute(req.files, stdin=req.stdin, args=req.args)
    if not result.success:
        # Only sandbox faults get a 500; the user's own exit code never does.
        return JSONResponse(status_code=500, content=result.model_dump(by_alias=True, exclude_none=True))
    return result
