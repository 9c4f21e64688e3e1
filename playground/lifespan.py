"""Lifespan management for the FastAPI application.

This module builds the execution engine and its collaborators at startup,
publishes them on ``playground.state`` and tears them down at shutdown.
"""

import logging
from dataclasses import dataclass

import redis.asyncio as redis
from redis.asyncio import BlockingConnectionPool as RedisConnectionPool

from playground import state
from playground.config import get_settings
from playground.ratelimit import RateLimiter
from playground.sandbox import AdmissionQueue, BatchExecutor, Janitor, ProcessPipeline

logger = logging.getLogger(__name__)


@dataclass
class LifespanResources:
    """Container for resources initialized during lifespan."""

    batch_admission: AdmissionQueue
    interactive_admission: AdmissionQueue
    janitor: Janitor
    pipeline: ProcessPipeline
    batch_executor: BatchExecutor
    rate_limiter: RateLimiter
    redis_client: redis.Redis | None = None


async def init_redis() -> redis.Redis | None:
    """Initialize the Redis client if caching is enabled.

    Returns:
        Configured Redis client, or None when Redis is disabled.
    """
    settings = get_settings()
    if not settings.redis.enabled:
        return None

    redis_pool = RedisConnectionPool(
        host=settings.redis.host,
        port=settings.redis.port,
        password=settings.redis.password if settings.redis.password else None,
        max_connections=settings.redis.max_connections,
        timeout=settings.redis.pool_timeout_sec,
        socket_timeout=settings.redis.socket_timeout,
        socket_connect_timeout=settings.redis.socket_connect_timeout,
    )

    candidate_client = redis.Redis(connection_pool=redis_pool, decode_responses=True)
    if hasattr(candidate_client, "__await__"):
        return await candidate_client
    return candidate_client


def build_admission() -> tuple[AdmissionQueue, AdmissionQueue]:
    """Create the batch queue and the queue terminal sessions draw from.

    Returns:
        (batch queue, interactive queue); the same object when sessions
        share the batch pool.
    """
    sandbox = get_settings().sandbox
    batch = AdmissionQueue(sandbox.max_concurrency, name="batch")
    if sandbox.interactive_shares_pool:
        return batch, batch
    return batch, AdmissionQueue(sandbox.interactive_max_concurrency, name="interactive")


async def setup_resources() -> LifespanResources:
    """Set up the engine and shared resources.

    Returns:
        LifespanResources containing all initialized resources.
    """
    settings = get_settings()
    sandbox = settings.sandbox

    sandbox.jobs_dir.mkdir(parents=True, exist_ok=True)
    batch_admission, interactive_admission = build_admission()
    janitor = Janitor(delay=sandbox.cleanup_delay_sec)
    pipeline = ProcessPipeline.from_settings(sandbox)

    resources = LifespanResources(
        batch_admission=batch_admission,
        interactive_admission=interactive_admission,
        janitor=janitor,
        pipeline=pipeline,
        batch_executor=BatchExecutor(batch_admission, pipeline, janitor, sandbox.jobs_dir),
        rate_limiter=RateLimiter(settings.rate_limit.max_requests, settings.rate_limit.window_sec),
        redis_client=await init_redis(),
    )

    state.redis_client = resources.redis_client
    state.batch_admission = resources.batch_admission
    state.interactive_admission = resources.interactive_admission
    state.janitor = resources.janitor
    state.pipeline = resources.pipeline
    state.batch_executor = resources.batch_executor
    state.rate_limiter = resources.rate_limiter

    logger.info(
        "sandbox ready jobs_dir=%s max_concurrency=%d interactive_shares_pool=%s compiler=%s",
        sandbox.jobs_dir, sandbox.max_concurrency, sandbox.interactive_shares_pool, sandbox.compiler,
    )
    return resources


async def cleanup_resources(resources: LifespanResources) -> None:
    """Clean up all resources on shutdown.

    Args:
        resources: The resources to clean up.
    """
    # Pending workspace teardowns must finish before the process exits
    await resources.janitor.drain()

    if resources.redis_client:
        aclose = getattr(resources.redis_client, "aclose", None)
        if callable(aclose):
            await aclose()
        else:
            close = getattr(resources.redis_client, "close", None)
            if callable(close):
                close()

    state.redis_client = None
    state.batch_admission = None
    state.interactive_admission = None
    state.janitor = None
    state.pipeline = None
    state.batch_executor = None
    state.rate_limiter = None
