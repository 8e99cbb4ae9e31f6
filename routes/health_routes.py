"""
Health check endpoint.

GET /health — checks MongoDB and Redis connectivity.
Rules:
- MongoDB failure → "unhealthy" (503); accounts live there.
- Redis failure → "degraded" (200); only the request throttles use it.
- Redis not configured → "not_configured", status unaffected.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, Response

from schemas.dto.responses.common import HealthResponse
from shared.logging import get_logger

log = get_logger(__name__)

router = APIRouter(tags=["health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"model": HealthResponse, "description": "MongoDB unreachable"}},
)
async def health_check(request: Request, response: Response) -> HealthResponse:
    checks: dict[str, str] = {}
    overall = "healthy"

    try:
        db = request.app.state.db
        await db.client.admin.command("ping")
        checks["mongodb"] = "ok"
    except Exception as e:
        log.error("health_check_failed", component="mongodb", error=str(e))
        checks["mongodb"] = "error"
        overall = "unhealthy"

    redis = request.app.state.redis
    if redis is None:
        checks["redis"] = "not_configured"
    else:
        try:
            await redis.ping()
            checks["redis"] = "ok"
        except Exception as e:
            log.warning("health_check_failed", component="redis", error=str(e))
            checks["redis"] = "error"
            if overall == "healthy":
                overall = "degraded"

    response.status_code = 503 if overall == "unhealthy" else 200
    return HealthResponse(status=overall, checks=checks)
