import logging

from fastapi import APIRouter

from playground.config import get_settings
from playground.dependencies import OptionalRedis
from playground.models.execution import RuntimeInfo, RuntimesResponse
from playground.sandbox.runtimes import probe_compiler

router = APIRouter(prefix="/api", tags=["system"])

_logger = logging.getLogger("playground.runtimes")

RUNTIMES_CACHE_KEY = "playground:runtimes:c"


@router.get("/runtimes", response_model=RuntimesResponse)
async def get_runtimes(redis_client: OptionalRedis) -> RuntimesResponse:
    settings = get_settings()

    if redis_client:
        try:
            cached = await redis_client.get(RUNTIMES_CACHE_KEY)
            if cached:
                return _response(RuntimeInfo.model_validate_json(cached))
        except Exception as e:
            _logger.warning("runtimes.cache_read_failed err=%r", e)

    runtime = await probe_compiler(settings.sandbox.compiler)

    if redis_client and runtime:
        try:
            await redis_client.setex(
                RUNTIMES_CACHE_KEY, settings.redis.runtimes_cache_ttl_sec, runtime.model_dump_json()
            )
        except Exception as e:
            _logger.warning("runtimes.cache_write_failed err=%r", e)

    return _response(runtime)


def _response(runtime: RuntimeInfo | None) -> RuntimesResponse:
    runtimes = [runtime] if runtime else []
    return RuntimesResponse(available=bool(runtimes), c=runtime, all_runtimes=len(runtimes))
