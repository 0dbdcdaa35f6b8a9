"""
Domain error taxonomy.

A single ``DomainError`` variant carries ``code``, ``message`` and optional
``details``; the HTTP status is derived from the code. Factories are plain
functions so call sites read ``raise domain_error(ErrorCode.NETWORK_ERROR)``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

import structlog

logger = structlog.get_logger(__name__)


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    NOT_FOUND = "NOT_FOUND"
    TOO_MANY_REQUESTS = "TOO_MANY_REQUESTS"
    DATABASE_QUERY_ERROR = "DATABASE_QUERY_ERROR"
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    EXTERNAL_SERVICE_TIMEOUT = "EXTERNAL_SERVICE_TIMEOUT"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"


ERROR_CODE_TO_STATUS: dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.TOO_MANY_REQUESTS: 429,
    ErrorCode.DATABASE_QUERY_ERROR: 500,
    ErrorCode.EXTERNAL_SERVICE_ERROR: 502,
    ErrorCode.EXTERNAL_SERVICE_TIMEOUT: 504,
    ErrorCode.INTERNAL_SERVER_ERROR: 500,
    ErrorCode.NETWORK_ERROR: 503,
}

DEFAULT_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.VALIDATION_ERROR: "Validation failed.",
    ErrorCode.INVALID_INPUT: "Invalid input provided.",
    ErrorCode.NOT_FOUND: "Resource not found.",
    ErrorCode.TOO_MANY_REQUESTS: "Too many requests. Please try again later.",
    ErrorCode.DATABASE_QUERY_ERROR: "Database query failed.",
    ErrorCode.EXTERNAL_SERVICE_ERROR: "External service error occurred.",
    ErrorCode.EXTERNAL_SERVICE_TIMEOUT: "External service timeout.",
    ErrorCode.INTERNAL_SERVER_ERROR: "Internal server error occurred.",
    ErrorCode.NETWORK_ERROR: "Network error occurred.",
}


class DomainError(Exception):
    def __init__(self, code: ErrorCode, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.code = ErrorCode(code)
        self.message = message
        self.details = details

    @property
    def status_code(self) -> int:
        return ERROR_CODE_TO_STATUS[self.code]

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.status_code < 500

    @property
    def is_server_error(self) -> bool:
        return 500 <= self.status_code < 600

    def __repr__(self) -> str:
        return f"DomainError(code={self.code.value}, status={self.status_code}, message={self.message!r})"


def default_message(code: ErrorCode) -> str:
    return DEFAULT_MESSAGES.get(ErrorCode(code), "An error occurred.")


def domain_error(
    code: ErrorCode,
    message: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
) -> DomainError:
    error = DomainError(code, message or default_message(code), details)
    logger.debug(
        "domain_error_created",
        code=error.code.value,
        status_code=error.status_code,
        error_message=error.message,
        has_details=details is not None,
    )
    return error


def not_found(entity: str = "Resource") -> DomainError:
    return domain_error(ErrorCode.NOT_FOUND, f"{entity} not found")


def invalid_data(message: str = "Data Invalid or Empty") -> DomainError:
    return domain_error(ErrorCode.INVALID_INPUT, message)
