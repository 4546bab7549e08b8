"""
Libris Backend — FastAPI Application Factory
=============================================

What:  Creates and configures the FastAPI application instance.
Why:   Centralizes app configuration, middleware registration, route mounting,
       and lifecycle management in one place.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   Called by uvicorn to start the server (uvicorn libris.main:app).

Application Architecture:
    ┌──────────────────────────────────────────────────────┐
    │                   FastAPI App                        │
    │                                                      │
    │  Middleware:  Request ID → Logging → GZip → CORS     │
    │                                                      │
    │  Routes (by ENABLED_SERVICES):                       │
    │  ┌────────────────────┐ ┌───────────────────────┐    │
    │  │ loan: /api/loan/*  │ │ profile: /api/register│    │
    │  │       /api/loans/* │ │          /api/login   │    │
    │  └────────────────────┘ └───────────────────────┘    │
    │  always: GET /health                                 │
    │                                                      │
    │  Exception Handlers:                                 │
    │  Validation→422 │ InvalidBook/State→400 │ NotFound→404│
    │  Auth→401 │ Database→500 │ anything else→500          │
    └──────────────────────────────────────────────────────┘
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Iterable, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from libris import __version__
from libris.config import settings
from libris.database import dispose_engine
from libris.exceptions import (
    DatabaseError,
    LibrisError,
    NotFoundError,
    ValidationError,
)
from libris.middleware.logging import RequestLoggingMiddleware
from libris.middleware.request_id import RequestIDMiddleware, request_id_var
from libris.routes import health, loans, profile
from libris.services.inventory_client import inventory_client

logger = logging.getLogger(__name__)

SERVICE_ROUTERS = {
    "loan": loans.router,
    "profile": profile.router,
}


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure logging for the entire application.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    Called once during app startup, before any other initialization.
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Third-party libraries log every operation at DEBUG/INFO
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Startup:  logging, configuration check, banner.
    Shutdown: close the Book-service connection pool, dispose the DB engine.
    """
    setup_logging()
    logger.info("=" * 60)
    logger.info("Libris Backend starting up (services: %s)", settings.enabled_services)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Keep serving: /health still reports what is wrong
        logger.error("Configuration error: %s", str(e))

    if "loan" in settings.enabled_services_list:
        logger.info(
            "Inventory service: %s (timeout=%.1fs, attempts=%d)",
            settings.inventory_base_url,
            settings.inventory_timeout,
            settings.inventory_max_attempts,
        )
    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("Libris Backend shutting down...")
    await inventory_client.aclose()
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_body(exc: LibrisError, message: Optional[str] = None) -> dict:
    return {
        "error": exc.error_code,
        "message": message or exc.message,
        "request_id": request_id_var.get(""),
    }


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exception types to HTTP status codes and response bodies.

    Handler hierarchy:
        RequestValidationError  → 422 (FastAPI body/path parsing)
        ValidationError         → 422
        NotFoundError           → 404
        DatabaseError           → 500 (generic message)
        LibrisError (base)      → exc.status_code (400, 401, ...)
        Exception (fallback)    → 500

    Security: handlers NEVER expose stack traces or SQL in the response.
    """

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        return await handle_validation_error(request, ValidationError.from_pydantic(exc.errors()))

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        rid = request_id_var.get("")
        logger.warning("[%s] Validation error: %s", rid, exc.errors)
        body = _error_body(exc)
        body["errors"] = exc.errors
        return JSONResponse(status_code=exc.status_code, content=body)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc))

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        rid = request_id_var.get("")
        logger.error("[%s] Database error: %s | Context: %s", rid, exc.message, exc.context)
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc))

    @app.exception_handler(LibrisError)
    async def handle_libris_error(request: Request, exc: LibrisError):
        rid = request_id_var.get("")
        logger.info("[%s] %s: %s | Context: %s", rid, type(exc).__name__, exc.message, exc.context)
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred. Please try again or contact support.",
                "request_id": rid,
            },
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(services: Optional[Iterable[str]] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        services: Microservices to mount ("loan", "profile"). Defaults to
                  settings.enabled_services_list.
    """
    enabled = list(services) if services is not None else settings.enabled_services_list

    app = FastAPI(
        title="Libris API",
        description="Loan and Profile services of the Libris library system.",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Middleware executes in REVERSE order of addition
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)
    app.state.services = enabled

    for name in enabled:
        router = SERVICE_ROUTERS.get(name)
        if router is None:
            raise ValueError(f"Unknown service '{name}'. Known: {sorted(SERVICE_ROUTERS)}")
        app.include_router(router)
    app.include_router(health.router)

    return app


app = create_app()
