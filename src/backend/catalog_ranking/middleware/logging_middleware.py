"""
Logging Middleware for Correlation ID and Request Tracking

Automatically generates or extracts correlation IDs for every request,
enabling end-to-end request tracing across the entire system.
"""

import json
import re
import time
import uuid
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars

logger = structlog.get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"

# Polled by load balancers; logged at debug to keep request logs readable
_QUIET_PATHS = {"/health", "/api/v1/health"}


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Binds a correlation id and request metadata to the structlog context.

    - correlation_id comes from the X-Correlation-ID header or a new uuid4
    - the same id is echoed back on the response
    - request_started / request_completed / request_failed carry the duration
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        clear_contextvars()

        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        path = request.url.path
        bind_contextvars(
            correlation_id=correlation_id,
            request_method=request.method,
            request_path=path,
            client_ip=request.client.host if request.client else "unknown",
        )
        log = logger.debug if path in _QUIET_PATHS else logger.info

        started = time.perf_counter()
        log("request_started", query_params=dict(request.query_params))

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "request_failed",
                error=str(e),
                error_type=type(e).__name__,
                duration_ms=int((time.perf_counter() - started) * 1000),
                exc_info=True,
            )
            raise
        else:
            response.headers[CORRELATION_HEADER] = correlation_id
            log(
                "request_completed",
                status_code=response.status_code,
                duration_ms=int((time.perf_counter() - started) * 1000),
            )
            return response
        finally:
            clear_contextvars()


_SESSION_PATH = re.compile(r"/api/v1/rankings/sessions/(?P<session_id>[a-fA-F0-9-]{8,50})(?:/|$)")


class SessionContextMiddleware(BaseHTTPMiddleware):
    """
    Middleware to bind the editing session id to the logging context.

    Runs after LoggingMiddleware. The id is taken from the URL path
    (/api/v1/rankings/sessions/{session_id}/...) or, failing that, from a
    JSON body carrying a session_id field.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        session_id = None

        match = _SESSION_PATH.search(request.url.path)
        if match:
            session_id = match.group("session_id")
        elif request.method in ["POST", "PUT", "PATCH"]:
            session_id = await self._session_id_from_body(request)

        if session_id:
            bind_contextvars(session_id=session_id)

        return await call_next(request)

    @staticmethod
    async def _session_id_from_body(request: Request):
        if "application/json" not in request.headers.get("content-type", ""):
            return None

        # Reading consumes the stream
        body = await request.body()
        if not body:
            return None

        async def receive():
            return {"type": "http.request", "body": body}

        request._receive = receive

        try:
            body_json = json.loads(body.decode())
        except (json.JSONDecodeError, UnicodeDecodeError):
            return None
        if isinstance(body_json, dict):
            return body_json.get("session_id")
        return None
