"""
Error Handlers

Map the engine's error taxonomy onto HTTP responses. Every body has the
shape {"error": {"code", "message", "details"}} and echoes the request's
correlation id.
"""
from typing import Dict

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from ...domain.errors import ConcurrencyError, DomainError, PersistenceError
from ...utils.logger import get_logger, get_correlation_id

logger = get_logger(__name__)

# Seconds a caller should wait before retrying a write that did not apply
RETRY_AFTER_SECONDS = 1


def _response_headers(retryable: bool = False) -> Dict[str, str]:
    headers = {"X-Correlation-Id": get_correlation_id() or ""}
    if retryable:
        headers["Retry-After"] = str(RETRY_AFTER_SECONDS)
    return headers


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """
    Handle domain errors

    Not-found, precondition and concurrency errors are expected during
    normal operation and logged as warnings; persistence failures are
    logged as errors. The engine never retries its own writes, so
    persistence and concurrency failures tell the caller when to retry.
    """
    log = logger.error if isinstance(exc, PersistenceError) else logger.warning
    log(
        f"{request.method} {request.url.path} failed: {exc.error_code} - {exc.message}",
        extra={"error_code": exc.error_code}
    )
    return JSONResponse(
        status_code=exc.http_status,
        content=jsonable_encoder(exc.to_dict()),
        headers=_response_headers(retryable=isinstance(exc, (PersistenceError, ConcurrencyError)))
    )


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle request bodies or parameters that don't match the schema"""
    logger.warning(
        f"Validation error on {request.method} {request.url.path}: {exc.errors()}",
        extra={"error_code": "VALIDATION_ERROR"}
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "Request validation failed",
                "details": {"errors": jsonable_encoder(exc.errors())}
            }
        },
        headers=_response_headers()
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything outside the taxonomy is a bug; log the stack trace"""
    logger.error(f"Unexpected error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
                "details": {"correlation_id": get_correlation_id()}
            }
        },
        headers=_response_headers()
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, general_exception_handler)
