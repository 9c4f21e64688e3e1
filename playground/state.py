from typing import Optional

import redis.asyncio as redis

from playground.ratelimit import RateLimiter
from playground.sandbox import AdmissionQueue, BatchExecutor, Janitor, ProcessPipeline

# Global runtime state initialized in lifespan.setup_resources
redis_client: Optional[redis.Redis] = None
batch_admission: Optional[AdmissionQueue] = None
interactive_admission: Optional[AdmissionQueue] = None
janitor: Optional[Janitor] = None
pipeline: Optional[ProcessPipeline] = None
batch_executor: Optional[BatchExecutor] = None
rate_limiter: Optional[RateLimiter] = None
