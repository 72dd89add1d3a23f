from __future__ import annotations

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger("abg.request")

# Polled endpoints that would otherwise flood the log.
QUIET_PATHS = frozenset({"/health", "/api/admin/recruitment/activity/stream"})
SLOW_REQUEST_MS = 2000


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        path = request.url.path
        try:
            response = await call_next(request)
        except Exception:
            logger.error(
                "request_failed",
                extra={"method": request.method, "path": path, "request_id": getattr(request.state, "request_id", None)},
            )
            raise
        duration_ms = int((time.perf_counter() - start) * 1000)

        if response.status_code >= 500 or duration_ms >= SLOW_REQUEST_MS:
            level = logging.WARNING
        elif path in QUIET_PATHS:
            level = logging.DEBUG
        else:
            level = logging.INFO
        logger.log(
            level,
            "request_completed",
            extra={
                "method": request.method,
                "path": path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
                "request_id": getattr(request.state, "request_id", None),
            },
        )
        return response
