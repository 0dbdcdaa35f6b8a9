from __future__ import annotations

import traceback
from typing import Any, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from learnmap.core.observability.correlation import get_correlation_id
from learnmap.core.settings import settings
from learnmap.domain.errors import DomainError
from learnmap.domain.ports import DuplicateKeyError
from learnmap.infrastructure.persistence.documents import validation_errors

logger = structlog.get_logger(__name__)


def _error_example(message: str, errors: Any = None) -> dict[str, Any]:
    example: dict[str, Any] = {"success": False, "message": message}
    if errors is not None:
        example["errors"] = errors
    return example


ERROR_RESPONSES: dict[int, dict[str, Any]] = {
    400: {
        "description": "Bad Request",
        "content": {
            "application/json": {
                "example": _error_example(
                    "Invalid request data",
                    {"errors": [{"path": "topic", "message": "String should have at least 3 characters"}]},
                )
            }
        },
    },
    404: {
        "description": "Not Found",
        "content": {"application/json": {"example": _error_example("Learning map not found")}},
    },
    409: {
        "description": "Conflict",
        "content": {"application/json": {"example": _error_example("Id already exists")}},
    },
    429: {
        "description": "Too Many Requests",
        "content": {
            "application/json": {"example": _error_example("API quota exceeded. Please try again later")}
        },
    },
    500: {
        "description": "Internal Server Error",
        "content": {
            "application/json": {"example": _error_example("Failed to save learning map to database")}
        },
    },
    502: {
        "description": "Bad Gateway",
        "content": {
            "application/json": {
                "example": _error_example("Failed to parse Gemini response: invalid JSON")
            }
        },
    },
    503: {
        "description": "Service Unavailable",
        "content": {
            "application/json": {"example": _error_example("Network error. Please check your connection")}
        },
    },
    504: {
        "description": "Gateway Timeout",
        "content": {"application/json": {"example": _error_example("Request timed out. Please try again")}},
    },
}


def error_envelope(
    message: str,
    errors: Any = None,
    exc: Optional[BaseException] = None,
) -> dict[str, Any]:
    content: dict[str, Any] = {"success": False, "message": message}
    if errors is not None:
        content["errors"] = errors
    if exc is not None and not settings.is_production:
        content["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return content


def _respond(status_code: int, content: dict[str, Any]) -> JSONResponse:
    request_id = get_correlation_id()
    headers = {"X-Correlation-ID": request_id} if request_id else None
    return JSONResponse(status_code=status_code, content=content, headers=headers)


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    log = logger.error if exc.is_server_error else logger.warning
    log(
        "domain_error",
        code=exc.code.value,
        status_code=exc.status_code,
        endpoint=str(request.url.path),
        error_message=exc.message,
    )
    return _respond(exc.status_code, error_envelope(exc.message, exc.details, exc))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Inbound body/path/query failed the request contract."""
    issues = [
        {
            "path": ".".join(str(part) for part in item.get("loc", ()) if part != "body"),
            "message": item.get("msg", "Invalid value"),
        }
        for item in exc.errors()
    ]
    logger.warning("request_contract_breach", endpoint=str(request.url.path), validation_errors=issues)
    return _respond(400, error_envelope("Invalid request data", {"errors": issues}))


async def model_validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
    errors = validation_errors(exc)
    logger.warning("model_validation_failed", endpoint=str(request.url.path), validation_errors=errors)
    return _respond(400, error_envelope("Validation Error", errors, exc))


async def duplicate_key_handler(request: Request, exc: DuplicateKeyError) -> JSONResponse:
    field = str(exc.field or "value")
    logger.warning("duplicate_key", endpoint=str(request.url.path), field=field)
    return _respond(409, error_envelope(f"{field[:1].upper()}{field[1:]} already exists", None, exc))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "unhandled_exception",
        endpoint=str(request.url.path),
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=exc,
    )
    message = "Internal server error" if settings.is_production else (str(exc) or "Internal server error")
    return _respond(500, error_envelope(message, None, exc))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(ValidationError, model_validation_handler)
    app.add_exception_handler(DuplicateKeyError, duplicate_key_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
