"""
Libris Backend — Health Check Route
====================================

What:  Health check endpoint for monitoring and load balancer probes.
How:   Checks the database and, when the Loan service is mounted, whether
       the Book service answers at all.

    Status levels:
    - healthy:   All dependencies operational
    - degraded:  Book service unreachable (loans will be rejected as
                 "Invalid book ID" until it comes back)
    - unhealthy: Database unreachable
"""

import logging
import time

from fastapi import APIRouter, Request
from sqlalchemy import text

from libris import __version__
from libris.config import settings
from libris.database import engine
from libris.schemas.common import HealthResponse
from libris.services.inventory_client import inventory_client

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(request: Request) -> HealthResponse:
    services = getattr(request.app.state, "services", settings.enabled_services_list)
    db_status = "connected"
    inventory_status = "not_used"
    overall = "healthy"

    # ── Check Database ────────────────────────────────────────────────────
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    # ── Check Book Service ────────────────────────────────────────────────
    if "loan" in services:
        if await inventory_client.ping():
            inventory_status = "available"
        else:
            inventory_status = "unavailable"
            overall = "degraded" if overall != "unhealthy" else overall
            logger.warning("Health check: inventory service unreachable")

    return HealthResponse(
        status=overall,
        version=__version__,
        services=services,
        database=db_status,
        inventory=inventory_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
