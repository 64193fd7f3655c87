"""
FastAPI application factory for LogVault.

This module creates the app with:
- Store, provisioner and service lifecycle management
- Schema provisioning at startup (failures are logged, the app stays up
  in a degraded state)
- CORS configuration
- Request logging and security response headers
- Mapping of LogVault errors to HTTP responses
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from .. import __version__
from ..config import Settings
from ..errors import (
    ForbiddenError,
    LogVaultError,
    NotFoundError,
    RequestTimeoutError,
    ValidationError,
)
from ..schema import SchemaProvisioner
from ..service import LogService
from ..store import Database, LogStore
from .routes import router

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: list[tuple[type[LogVaultError], int]] = [
    (ValidationError, 400),
    (ForbiddenError, 403),
    (NotFoundError, 404),
    (RequestTimeoutError, 504),
]

SECURITY_HEADERS = {
    "X-XSS-Protection": "1; mode=block",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
}


def status_for(error: LogVaultError) -> int:
    """HTTP status for a LogVault error (500 for storage and unknown errors)."""
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return code
    return 500


async def provision_schema(provisioner: SchemaProvisioner, apply: bool = True) -> bool:
    """Provision (or just inspect) the schema without raising.

    Failures are logged at ERROR with the traceback; the caller decides
    whether to keep serving.

    Returns:
        True if the schema is provisioned
    """
    try:
        if apply:
            state = await provisioner.apply()
        else:
            state = await provisioner.status()
    except Exception as e:
        logger.error(f"Schema provisioning failed, continuing degraded: {e}", exc_info=True)
        return False

    if not state.provisioned:
        logger.error("Schema is not provisioned, continuing degraded", extra=state.to_dict())
    return state.provisioned


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Configuration (loaded from the environment if not provided)
    """
    settings = settings or Settings.load()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Manage store and service lifecycle."""
        settings.log_config()

        database = Database(
            settings.db_path,
            wal_mode=settings.wal_mode,
            busy_timeout_ms=settings.busy_timeout_ms,
        )
        provisioner = SchemaProvisioner(database)

        app.state.schema_ready = await provision_schema(
            provisioner, apply=settings.provision_on_startup
        )

        app.state.settings = settings
        app.state.provisioner = provisioner
        app.state.log_service = LogService(
            LogStore(database),
            request_timeout=settings.request_timeout,
            max_page_size=settings.max_page_size,
        )

        logger.info("LogVault started", extra={"schema_ready": app.state.schema_ready})

        yield

        logger.info("LogVault stopped")

    app = FastAPI(
        title="LogVault",
        description=(
            "Remote log ingestion and retrieval. "
            "Logs flagged error or trace cannot be deleted."
        ),
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_middleware(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        started = time.perf_counter()
        context = {"method": request.method, "path": request.url.path}
        try:
            response = await call_next(request)
        except Exception:
            logger.error("Request failed", extra=context, exc_info=True)
            raise

        for name, value in SECURITY_HEADERS.items():
            response.headers[name] = value

        logger.info(
            f"{request.method} {request.url.path} {response.status_code}",
            extra={
                **context,
                "status": response.status_code,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            },
        )
        return response

    @app.exception_handler(LogVaultError)
    async def logvault_error_handler(request: Request, exc: LogVaultError) -> JSONResponse:
        code = status_for(exc)
        if code >= 500:
            logger.error(
                f"Request failed: {exc.message}",
                extra={"path": request.url.path, "error_code": exc.code},
            )
        return JSONResponse(
            {"error": exc.message, "error_code": exc.code},
            status_code=code,
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            {"error": "Malformed request", "error_code": "VALIDATION_ERROR"},
            status_code=400,
        )

    app.include_router(router, prefix="/api")

    @app.get("/", response_class=PlainTextResponse)
    async def root():
        return "LogVault is up"

    return app
