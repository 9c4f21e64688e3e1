import logging

logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
)
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from playground.config import get_settings
from playground.controllers.execute import router as execute_router
from playground.controllers.health import router as health_router
from playground.controllers.system import router as system_router
from playground.controllers.ws_terminal import router as ws_terminal_router
from playground.errors import register_exception_handlers
from playground.lifespan import cleanup_resources, setup_resources
from playground.middleware import HTTPLogMiddleware, SecurityHeadersMiddleware

settings = get_settings()

app = FastAPI(title="C Playground Execution API", version="1.0.0")
register_exception_handlers(app)

app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors.origins,
    allow_origin_regex=settings.cors.origins_regex or None,
    allow_credentials=settings.cors.allow_credentials,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)

if settings.debug.request:
    logging.getLogger("playground.http").setLevel(logging.DEBUG)
    app.add_middleware(HTTPLogMiddleware)

logging.getLogger("playground.ws.terminal").setLevel(
    logging.INFO if settings.debug.websocket else logging.WARNING
)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    resources = await setup_resources()
    try:
        yield
    finally:
        await cleanup_resources(resources)

app.router.lifespan_context = lifespan

app.include_router(health_router)
app.include_router(system_router)
app.include_router(execute_router)
app.include_router(ws_terminal_router)

Instrumentator().instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)
