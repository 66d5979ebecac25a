import time
import uuid
from typing import Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"


class TelemetryMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()

        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        method = request.method
        path = request.url.path

        # Every log line emitted while handling this request carries its id
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        try:
            response = await call_next(request)
            duration = time.perf_counter() - start_time

            logger.info(
                "request_completed",
                method=method,
                path=path,
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2),
            )

            response.headers["X-Process-Time"] = str(duration)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response

        except Exception as e:
            duration = time.perf_counter() - start_time

            logger.error(
                "request_failed",
                method=method,
                path=path,
                error=str(e),
                duration_ms=round(duration * 1000, 2),
            )
            raise
        finally:
            structlog.contextvars.unbind_contextvars("request_id")
