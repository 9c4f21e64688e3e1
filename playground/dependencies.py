"""Dependency injection for FastAPI endpoints.

This module provides FastAPI dependencies for accessing the execution
engine and shared resources initialized in ``playground.lifespan``.

Usage in controllers:
    from playground.dependencies import Executor

    @router.post("/execute")
    async def execute(req: ExecuteRequest, executor: Executor):
        return await executor.execute(req.files)
"""

from typing import Annotated

import redis.asyncio as redis
from fastapi import Depends, Request

from playground import state
from playground.config import get_settings
from playground.errors import RateLimitedError, ServiceUnavailableError
from playground.ratelimit import client_ip
from playground.sandbox import BatchExecutor


def get_batch_executor() -> BatchExecutor:
    """Get the batch executor.

    Raises:
        ServiceUnavailableError: If the engine is not initialized.

    Returns:
        The BatchExecutor instance.
    """
    if state.batch_executor is None:
        raise ServiceUnavailableError(detail="Execution engine not initialized")
    return state.batch_executor


def get_optional_redis() -> redis.Redis | None:
    """Get the Redis client if available, or None."""
    return state.redis_client


def enforce_rate_limit(request: Request) -> None:
    """Count the request against its client's window.

    Raises:
        RateLimitedError: If the client is over its limit.
    """
    settings = get_settings().rate_limit
    if not settings.enabled or state.rate_limiter is None:
        return
    ip = client_ip(
        request.headers,
        request.client.host if request.client else None,
        trust_forwarded=settings.trust_forwarded,
    )
    if not state.rate_limiter.check(ip):
        raise RateLimitedError(retry_after_sec=settings.window_sec, max_requests=settings.max_requests)


Executor = Annotated[BatchExecutor, Depends(get_batch_executor)]
OptionalRedis = Annotated[redis.Redis | None, Depends(get_optional_redis)]
RateLimited = Depends(enforce_rate_limit)
