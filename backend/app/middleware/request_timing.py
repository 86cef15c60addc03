
import time
import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = structlog.get_logger("request-timing")

SLOW_REQUEST_MS = 2000

class RequestTimingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        dur_ms = int((time.perf_counter() - start) * 1000)
        response.headers["X-Response-Time-ms"] = str(dur_ms)
        if dur_ms >= SLOW_REQUEST_MS:
            logger.warning("request.slow", method=request.method, path=request.url.path, duration_ms=dur_ms)
        return response
