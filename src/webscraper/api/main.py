"""FastAPI application factory and entry point.

Usage::

    uvicorn webscraper.api.main:app --reload
"""

from __future__ import annotations

import time
import uuid
from typing import Callable

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from webscraper.api.limiter import limiter
from webscraper.api.routes.webscraper import error_response
from webscraper.api.routes.webscraper import router as webscraper_router
from webscraper.config.settings import get_settings
from webscraper.core.logging_config import configure_logging, request_id_var

logger = structlog.get_logger(__name__)


def create_app() -> FastAPI:
    """Build and configure the FastAPI application.

    Separated from the module-level ``app`` singleton so that tests can
    build an application after patching settings.

    Returns:
        A fully configured ``FastAPI`` instance.
    """
    settings = get_settings()
    configure_logging(settings.log_level)

    application = FastAPI(
        title=settings.app_name,
        description="Single-URL content extraction with robots.txt compliance.",
        version="0.1.0",
        debug=settings.debug,
    )

    # ---- Middleware --------------------------------------------------------

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,  # guest_id cookie
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @application.middleware("http")
    async def request_logging_middleware(
        request: Request, call_next: Callable
    ) -> Response:
        """Log every request with its status and duration under a fresh ``request_id``."""
        request_id = str(uuid.uuid4())
        request_id_var.set(request_id)
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        start = time.perf_counter()
        response: Response | None = None
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error("unhandled_exception", exc_info=exc)
            raise
        finally:
            elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
            status_code = getattr(response, "status_code", 500)
            log_fn = logger.warning if status_code >= 400 else logger.info
            log_fn("request_complete", status_code=status_code, elapsed_ms=elapsed_ms)

        response.headers["X-Request-ID"] = request_id
        return response

    # ---- Rate limiting -----------------------------------------------------

    application.state.limiter = limiter
    application.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # ---- Error envelope for malformed bodies -------------------------------

    @application.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return error_response(
            "validation_error",
            "Invalid JSON body",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=[{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in exc.errors()],
        )

    # ---- Routers -----------------------------------------------------------

    application.include_router(webscraper_router, prefix="/webscraper", tags=["webscraper"])

    @application.get("/health", tags=["system"])
    async def health() -> JSONResponse:
        """Liveness check; performs no I/O."""
        return JSONResponse({"status": "ok", "webscraper_enabled": settings.webscraper_enabled})

    return application


app = create_app()
"""The FastAPI application instance passed to Uvicorn."""
