"""
Expense Tracker Backend — Health Check Route
=============================================

Status levels:
    healthy     database reachable, AI available or deliberately disabled
    degraded    database reachable, AI failing or its circuit open
    unhealthy   database unreachable (HTTP 503)

Exempt from rate limiting and from the access log.
"""

import logging
import time

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from expense_tracker import __version__
from expense_tracker.database import engine
from expense_tracker.schemas.common import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get("/health", response_model=HealthResponse, summary="Service health check")
async def health_check(request: Request):
    db_status = "connected"
    overall = "healthy"

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", e)

    ai_status = await request.app.state.ai_service.health_check()
    if ai_status in ("unavailable", "circuit_open") and overall == "healthy":
        overall = "degraded"

    body = HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        ai=ai_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
    if overall == "unhealthy":
        return JSONResponse(status_code=503, content=body.model_dump())
    return body
