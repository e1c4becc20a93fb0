"""
Correlation ID Middleware

Tags each request with a correlation ID for log tracing and writes one
access log line per request.
"""
import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from ...utils.logger import get_logger, correlation_id_var
from ...utils.idgen import generate_correlation_id

logger = get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-Id"

# Health check traffic is logged at DEBUG so it doesn't drown the access log
QUIET_PATHS = frozenset({"/health", "/"})


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Reuse an incoming X-Correlation-Id or generate one, bind it to the
    logging context for the request, echo it on the response and log
    method, path, status, duration and caller.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or generate_correlation_id()
        token = correlation_id_var.set(correlation_id)
        try:
            started = time.perf_counter()
            response = await call_next(request)
            elapsed_ms = (time.perf_counter() - started) * 1000

            response.headers[CORRELATION_HEADER] = correlation_id
            log = logger.debug if request.url.path in QUIET_PATHS else logger.info
            log(
                f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f} ms)",
                extra={
                    "tenant_id": request.headers.get("X-Tenant-Id"),
                    "user_id": request.headers.get("X-User-Id"),
                    "status": response.status_code
                }
            )
            return response
        finally:
            correlation_id_var.reset(token)
