"""
Request logging middleware.

Binds a request id and the caller's identity into structlog's contextvars,
so queue engine events logged while serving a request carry them too.
"""
import time
import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from printflow.dependencies.auth import decode_token

logger = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"


def _caller(request: Request) -> tuple[str | None, str | None]:
    scheme, _, token = request.headers.get("authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None, None
    payload = decode_token(token)
    if payload is None:
        return None, None
    return payload.sub, payload.role


class LoggingMiddleware(BaseHTTPMiddleware):
    """One ``request_completed`` (or ``request_failed``) line per HTTP request."""

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        user_id, role = _caller(request)

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id, user_id=user_id, role=role)
        request_logger = logger.bind(route=request.url.path, method=request.method)

        try:
            response = await call_next(request)
        except Exception as e:
            request_logger.error(
                "request_failed",
                status_code=500,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
                error=str(e),
            )
            raise
        finally:
            structlog.contextvars.unbind_contextvars("request_id", "user_id", "role")

        request_logger.info(
            "request_completed",
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
            request_id=request_id,
            user_id=user_id,
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
