from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api.greeting import router as greeting_router
from app.api.metrics import router as metrics_router
from app.config import get_settings
from app.observability.logging import configure_access_log, configure_logging
from app.observability.middleware import RequestContextMiddleware
from app.services.scheduler import shutdown_scheduler


configure_logging(get_settings().log_level)


@asynccontextmanager
async def _lifespan(_: FastAPI) -> AsyncIterator[None]:
    configure_access_log(get_settings().access_log_file)
    yield
    shutdown_scheduler()


app = FastAPI(title="Trace Context Probe", version="0.1.0", lifespan=_lifespan)
app.add_middleware(RequestContextMiddleware)
app.include_router(greeting_router)
app.include_router(metrics_router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}
