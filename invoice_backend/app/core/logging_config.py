"""Structured JSON logging and per-request correlation ids."""

import logging
import sys
import time
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request

REQUEST_ID_HEADER = "x-request-id"

LOGGER = structlog.get_logger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level.upper())
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", key="ts"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level.upper())),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or "unknown"


def install_request_context(app: FastAPI) -> None:
    """Bind a request id to every log line emitted while serving a request."""

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
        request.state.request_id = request_id
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start = time.perf_counter()
        LOGGER.info("request_started", method=request.method, path=request.url.path)
        try:
            response = await call_next(request)
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            LOGGER.info("request_completed", method=request.method, path=request.url.path, duration_ms=duration_ms)
            structlog.contextvars.clear_contextvars()
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
