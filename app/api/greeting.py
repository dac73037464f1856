from __future__ import annotations

import structlog
from fastapi import APIRouter

from app.api.responses import DeferredJSONResponse
from app.config import get_settings
from app.models.schemas import MessageResponse
from app.services.scheduler import get_scheduler


SYNC_MESSAGE = "Hello from Sync"
ASYNC_MESSAGE = "Hello from Async"

router = APIRouter(prefix="/hello", tags=["greeting"])
logger = structlog.get_logger("greeting")


def _build_async_payload() -> dict:
    # Runs on the scheduler thread.
    logger.info("hello.async.inside")
    return MessageResponse(message=ASYNC_MESSAGE).model_dump()


@router.get("/sync", response_model=MessageResponse)
async def hello_sync() -> MessageResponse:
    logger.info("hello.sync")
    return MessageResponse(message=SYNC_MESSAGE)


@router.get("/async")
async def hello_async() -> DeferredJSONResponse:
    settings = get_settings()
    logger.info("hello.async.before", delay_ms=settings.async_delay_ms, propagate=settings.propagate_context)

    deferred = get_scheduler().schedule(
        _build_async_payload,
        settings.async_delay_seconds,
        propagate=settings.propagate_context,
    )
    return DeferredJSONResponse(deferred)
