"""Custom exception handlers for the FastAPI application.

Every error response has the same body: ``{"error": "<message>"}``.

Hey future me - the catch-all handler at the bottom is the "uncaught error"
path: it writes an error_logs row (endpoint, message, timestamp) and answers a
generic 500. If writing that row fails too, we only log it, the client still
gets its 500.
"""

import json
import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from theset.domain.exceptions import (
    AuthenticationError,
    BusinessRuleViolation,
    ConfigurationError,
    DuplicateEntityException,
    EntityNotFoundException,
    ExternalServiceError,
    RateLimitExceededError,
    ValidationException,
)
from theset.infrastructure.persistence import ErrorLogRepository

logger = logging.getLogger(__name__)


def _error(status_code: int, message: Any, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message}, headers=headers)


# Pydantic's exc.errors() can carry the raw body as bytes, which JSONResponse can't
# serialize. Walk the structure and decode.
def _sanitize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
    def _sanitize_value(value: Any) -> Any:
        if isinstance(value, bytes):
            try:
                return value.decode("utf-8")
            except UnicodeDecodeError:
                return value.decode("latin-1")
        elif isinstance(value, dict):
            return {k: _sanitize_value(v) for k, v in value.items()}
        elif isinstance(value, list | tuple):
            return [_sanitize_value(item) for item in value]
        return value

    return [_sanitize_value(error) for error in errors]


async def record_error_log(request: Request, exc: BaseException) -> None:
    """Write an error_logs row. Never raises."""
    db = getattr(request.app.state, "db", None)
    if db is None:
        return
    try:
        async with db.session_scope() as session:
            await ErrorLogRepository(session).add(
                endpoint=request.url.path,
                error=str(exc) or type(exc).__name__,
                details={"method": request.method, "type": type(exc).__name__},
            )
    except SQLAlchemyError as log_error:
        logger.error(
            "Could not write error log for %s: %s", request.url.path, log_error
        )


# Hey future me, these are registered ONCE in create_app() before any request.
# Starlette picks the most specific class in the exception's MRO, so the
# RateLimitExceededError handler wins over the ExternalServiceError one.
def register_exception_handlers(app: FastAPI) -> None:
    """Register handlers mapping domain exceptions to HTTP status codes."""

    @app.exception_handler(ValidationException)
    async def validation_exception_handler(
        request: Request, exc: ValidationException
    ) -> JSONResponse:
        logger.warning(
            "Validation error at %s: %s",
            request.url.path,
            exc.message,
            extra={"path": request.url.path, "error": exc.message},
        )
        return _error(status.HTTP_400_BAD_REQUEST, exc.message)

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = _sanitize_validation_errors(list(exc.errors()))
        logger.warning(
            "Request validation error at %s: %s",
            request.url.path,
            errors,
            extra={"path": request.url.path, "errors": errors},
        )
        fields = ", ".join(
            ".".join(str(part) for part in err.get("loc", ()) if part != "body")
            for err in errors
        )
        message = f"Invalid request: {fields}" if fields else "Invalid request"
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": message, "details": errors},
        )

    @app.exception_handler(json.JSONDecodeError)
    async def json_decode_error_handler(
        request: Request, exc: json.JSONDecodeError
    ) -> JSONResponse:
        logger.warning("Malformed JSON at %s: %s", request.url.path, exc)
        return _error(status.HTTP_400_BAD_REQUEST, f"Malformed JSON: {exc.msg}")

    @app.exception_handler(EntityNotFoundException)
    async def entity_not_found_exception_handler(
        request: Request, exc: EntityNotFoundException
    ) -> JSONResponse:
        logger.info(
            "Entity not found at %s: %s %s",
            request.url.path,
            exc.entity_type,
            exc.entity_id,
            extra={
                "path": request.url.path,
                "entity_type": exc.entity_type,
                "entity_id": exc.entity_id,
            },
        )
        return _error(status.HTTP_404_NOT_FOUND, exc.message)

    @app.exception_handler(DuplicateEntityException)
    async def duplicate_entity_exception_handler(
        request: Request, exc: DuplicateEntityException
    ) -> JSONResponse:
        logger.warning(
            "Duplicate entity at %s: %s %s",
            request.url.path,
            exc.entity_type,
            exc.entity_id,
        )
        return _error(status.HTTP_409_CONFLICT, exc.message)

    @app.exception_handler(BusinessRuleViolation)
    async def business_rule_violation_handler(
        request: Request, exc: BusinessRuleViolation
    ) -> JSONResponse:
        logger.warning(
            "Business rule violation at %s: %s", request.url.path, exc.message
        )
        return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, exc.message)

    @app.exception_handler(AuthenticationError)
    async def authentication_error_handler(
        request: Request, exc: AuthenticationError
    ) -> JSONResponse:
        logger.warning(
            "Authentication error at %s: %s", request.url.path, exc.message
        )
        return _error(
            status.HTTP_401_UNAUTHORIZED,
            exc.message,
            headers={"WWW-Authenticate": "Bearer"},
        )

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(
        request: Request, exc: ConfigurationError
    ) -> JSONResponse:
        logger.error("Configuration error at %s: %s", request.url.path, exc.message)
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, exc.message)

    @app.exception_handler(ExternalServiceError)
    async def external_service_error_handler(
        request: Request, exc: ExternalServiceError
    ) -> JSONResponse:
        logger.error(
            "External service error at %s: %s",
            request.url.path,
            exc.message,
            extra={"path": request.url.path, "service": exc.service},
        )
        return _error(status.HTTP_502_BAD_GATEWAY, exc.message)

    @app.exception_handler(RateLimitExceededError)
    async def rate_limit_exceeded_handler(
        request: Request, exc: RateLimitExceededError
    ) -> JSONResponse:
        logger.warning("Rate limit exceeded at %s: %s", request.url.path, exc.message)
        headers = None
        if exc.retry_after is not None:
            headers = {"Retry-After": str(int(exc.retry_after))}
        return _error(status.HTTP_429_TOO_MANY_REQUESTS, exc.message, headers=headers)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                "HTTP error %d at %s: %s", exc.status_code, request.url.path, exc.detail
            )
        else:
            logger.info(
                "HTTP error %d at %s: %s", exc.status_code, request.url.path, exc.detail
            )
        return _error(exc.status_code, exc.detail, headers=exc.headers)

    @app.exception_handler(Exception)
    async def unexpected_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.exception(
            "Unhandled error at %s: %s",
            request.url.path,
            exc,
            extra={"path": request.url.path, "error_type": type(exc).__name__},
        )
        await record_error_log(request, exc)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")
