"""
Health check endpoint for monitoring and orchestration.

Reports:
- Uptime
- Discord gateway connection and latency
- Number of live verification sessions

Used by container health checks and the hosting platform's restart policy.
"""

import math
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

router = APIRouter(tags=["health"])

# Global app start time (set in lifespan)
_app_start_time: datetime | None = None


def set_app_start_time(start_time: datetime) -> None:
    """Called by lifespan to track when app started."""
    global _app_start_time
    _app_start_time = start_time


def get_uptime_seconds() -> int:
    """Calculate seconds since app start."""
    if _app_start_time is None:
        return 0
    return int((datetime.now() - _app_start_time).total_seconds())


def check_discord(bot) -> dict[str, Any]:
    """
    Check the gateway connection.

    Returns: {"status": "ok"|"down", "latency_ms": N (if connected)}
    """
    if bot is None or not bot.is_ready() or bot.is_closed():
        return {"status": "down"}

    latency = bot.latency
    if latency is None or math.isinf(latency) or math.isnan(latency):
        return {"status": "down"}

    return {"status": "ok", "latency_ms": int(latency * 1000)}


@router.get(
    "/health",
    status_code=status.HTTP_200_OK,
    summary="Bot health check",
    description=(
        "Returns bot health including uptime, gateway status and live sessions. "
        "Returns 200 regardless of degraded dependencies (for graceful degradation)."
    ),
)
async def health_check(request: Request) -> JSONResponse:
    """
    Health check endpoint.

    Example response (healthy):
        {
            "status": "ok",
            "uptime_seconds": 3600,
            "checks": {
                "discord": {"status": "ok", "latency_ms": 42},
                "sessions": {"status": "ok", "live": 2}
            }
        }
    """
    bot = getattr(request.app.state, "bot", None)
    manager = getattr(request.app.state, "manager", None)

    discord_check = check_discord(bot)
    sessions_check = {"status": "ok", "live": len(manager) if manager is not None else 0}

    overall_status = "ok" if discord_check["status"] == "ok" else "degraded"

    return JSONResponse(
        content={
            "status": overall_status,
            "uptime_seconds": get_uptime_seconds(),
            "checks": {
                "discord": discord_check,
                "sessions": sessions_check,
            },
        },
        status_code=status.HTTP_200_OK,
    )
