import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("app.http")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        start = time.monotonic()
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:12]
        request.state.request_id = request_id
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers["x-request-id"] = request_id
            return response
        finally:
            duration_ms = int((time.monotonic() - start) * 1000)
            logger.info(
                "http_request method=%s path=%s status=%s duration_ms=%s request_id=%s",
                request.method.upper(),
                request.url.path,
                status_code,
                duration_ms,
                request_id,
            )
