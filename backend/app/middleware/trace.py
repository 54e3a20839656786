import time
import uuid
import logging

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from backend.app.core.logging import correlation_id_ctx, event_id_ctx

logger = logging.getLogger(__name__)


class TracingMiddleware(BaseHTTPMiddleware):
    """
    Attaches a correlation ID to every request so that log lines written
    while creating or amending an incident log can be tied back together.
    The operational event (festival, match day) is taken from X-Event-ID.
    """
    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        correlation_id_ctx.set(correlation_id)

        event_id = request.headers.get("X-Event-ID")
        if event_id:
            event_id_ctx.set(event_id)

        start_time = time.time()

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"Request failed: {request.method} {request.url.path}",
                extra={
                    "extra_data": {
                        "method": request.method,
                        "path": request.url.path,
                        "status_code": 500,
                        "duration_ms": round((time.time() - start_time) * 1000, 2),
                        "error": str(e),
                    }
                },
                exc_info=True,
            )
            raise

        logger.info(
            f"{request.method} {request.url.path} completed",
            extra={
                "extra_data": {
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": round((time.time() - start_time) * 1000, 2),
                    "client_ip": request.client.host if request.client else None,
                }
            },
        )
        response.headers["X-Correlation-ID"] = correlation_id
        return response
