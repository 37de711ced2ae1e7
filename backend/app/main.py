"""FastAPI application entrypoint and configuration.

This module provides the application factory for the disaster records
service. It wires structured logging and the request-id middleware, opens
the PostgreSQL pool in the lifespan, mounts the REST router and the
GraphQL endpoint, registers the error handlers that render every failure
as ``{"error", "details", "code", "requestId"}`` and exposes liveness and
readiness probes.

Example:
    The application can be run with uvicorn:
        $ uvicorn app.main:app --reload

    Or imported and used programmatically:
        >>> from app.main import app
        >>> # Use app in ASGI server
"""

from __future__ import annotations

import contextlib
from collections.abc import AsyncIterator
from typing import Any

import fastapi
import structlog
from fastapi import exceptions
from fastapi.middleware import cors
from starlette import responses

from app.api import disasters, graphql_schema
from app.core import config, errors
from app.core import logging as app_logging
from app.db import database

logger = structlog.get_logger(__name__)


def _error_body(
    request: fastapi.Request,
    message: str,
    details: list[str],
    code: str,
) -> dict[str, Any]:
    return {
        "error": message,
        "details": details,
        "code": code,
        "requestId": getattr(request.state, "request_id", None),
    }


def _request_context(request: fastapi.Request) -> dict[str, Any]:
    return {
        "route": request.url.path,
        "method": request.method,
        "query": dict(request.query_params),
        "params": dict(request.path_params),
    }


def _failure_context(request: fastapi.Request) -> dict[str, Any]:
    return {
        **_request_context(request),
        "body": getattr(request.state, "body", None),
    }


async def _handle_api_error(
    request: fastapi.Request,
    exc: errors.DisasterAPIError,
) -> responses.JSONResponse:
    if isinstance(exc, errors.StoreError):
        logger.error(
            "store operation failed",
            code=exc.code,
            error=exc.message,
            details=exc.details,
            **_failure_context(request),
        )
    else:
        logger.warning(
            "request rejected",
            code=exc.code,
            error=exc.message,
            details=exc.details,
            **_request_context(request),
        )
    # store internals stay in the log
    message = type(exc).default_message if exc.status_code >= 500 else exc.message
    return responses.JSONResponse(
        _error_body(request, message, exc.details, exc.code),
        status_code=exc.status_code,
    )


async def _handle_request_validation(
    request: fastapi.Request,
    exc: exceptions.RequestValidationError,
) -> responses.JSONResponse:
    details = [str(error.get("msg", "")) for error in exc.errors()]
    logger.warning("malformed request", details=details, **_request_context(request))
    return responses.JSONResponse(
        _error_body(request, "Invalid input", details, "INVALID_INPUT"),
        status_code=400,
    )


async def _handle_unexpected(
    request: fastapi.Request,
    exc: Exception,
) -> responses.JSONResponse:
    logger.exception("unhandled error", **_failure_context(request))
    body = _error_body(request, "Internal server error", [], "INTERNAL_ERROR")
    # runs outside the request-id middleware, which never sees this response
    headers = (
        {app_logging.REQUEST_ID_HEADER: body["requestId"]}
        if body["requestId"]
        else None
    )
    return responses.JSONResponse(body, status_code=500, headers=headers)


@contextlib.asynccontextmanager
async def lifespan(app: fastapi.FastAPI) -> AsyncIterator[None]:
    """Open the database pool on startup and close it on shutdown."""
    settings = config.get_settings()
    app_logging.configure_logging(settings.log_level, json_output=settings.log_json)
    db = database.Database(settings)
    db.start()
    app.state.database = db
    logger.info("application started")
    try:
        yield
    finally:
        db.stop()
        logger.info("application stopped")


def create_app() -> fastapi.FastAPI:
    """Create and configure the FastAPI application.

    Sets up CORS and request-id middleware, includes the REST router and
    the GraphQL endpoint, registers error handlers and adds the health and
    readiness endpoints. CORS origins are configured from settings.

    Returns:
        Configured FastAPI application instance ready for ASGI server.

    Example:
        The app can be used with uvicorn or other ASGI servers:
            >>> app = create_app()
            >>> # Or use the module-level app instance:
            >>> from app.main import app
    """
    settings = config.get_settings()
    app = fastapi.FastAPI(
        title="Disaster Records API",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(disasters.router)
    app.include_router(graphql_schema.create_router(settings), prefix="/graphql")

    app.add_exception_handler(
        errors.DisasterAPIError,
        _handle_api_error,  # type: ignore[arg-type]
    )
    app.add_exception_handler(
        exceptions.RequestValidationError,
        _handle_request_validation,  # type: ignore[arg-type]
    )
    app.add_exception_handler(Exception, _handle_unexpected)

    app.middleware("http")(app_logging.request_id_middleware)
    app.add_middleware(
        cors.CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[app_logging.REQUEST_ID_HEADER],
    )

    @app.get("/health")
    async def health() -> dict[str, str]:  # type: ignore[misc]
        """Health check endpoint for monitoring and load balancers.

        Returns:
            Dictionary with status "ok" if the service is running.
        """
        return {"status": "ok"}

    @app.get("/readyz")
    async def readyz(
        repo: database.DisasterRepositoryProtocol = fastapi.Depends(  # noqa: B008
            disasters._get_repo
        ),
    ) -> responses.JSONResponse:
        """Readiness probe: succeeds only when the store answers a ping."""
        if await repo.ping():
            return responses.JSONResponse({"status": "ready", "db": "connected"})
        return responses.JSONResponse(
            {"status": "unavailable", "db": "disconnected"}, status_code=503
        )

    return app


app = create_app()
