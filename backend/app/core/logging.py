"""Structured logging setup and request-id correlation.

Logging goes through structlog on top of the standard library logger so
that third-party libraries (uvicorn, strawberry, psycopg2) and application
code share one output stream. Every HTTP request is tagged with a request
id that is bound into structlog's context variables, echoed back in the
``X-Request-ID`` response header and attached to error responses.

Example:
    Configure once at startup and log with key/value context:
        >>> from app.core.logging import configure_logging
        >>> configure_logging("INFO", json_output=False)
        >>> import structlog
        >>> structlog.get_logger(__name__).info("pool started", size=10)
"""

from __future__ import annotations

import logging
import sys
import uuid
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    import fastapi
    from starlette import responses

REQUEST_ID_HEADER = "X-Request-ID"


def configure_logging(level: str = "INFO", *, json_output: bool = True) -> None:
    """Configure structlog and the root stdlib logger.

    Args:
        level: Minimum log level name (e.g. "INFO", "DEBUG").
        json_output: Render events as JSON lines; otherwise use the
            human-friendly console renderer.
    """
    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
        force=True,
    )

    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


async def request_id_middleware(
    request: fastapi.Request,
    call_next: Callable[[fastapi.Request], Awaitable[responses.Response]],
) -> responses.Response:
    """Assign a request id and bind it to the logging context.

    An incoming ``X-Request-ID`` header is reused so ids can be correlated
    across services; otherwise a new one is generated.
    """
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    request.state.request_id = request_id
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)
    try:
        response = await call_next(request)
    finally:
        structlog.contextvars.unbind_contextvars("request_id")
    response.headers[REQUEST_ID_HEADER] = request_id
    return response
