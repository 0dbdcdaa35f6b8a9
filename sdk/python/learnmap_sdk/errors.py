"""
Error normalization for learning map API calls.

Every failure the SDK sees (transport exceptions, HTTP error envelopes,
schema validation errors, plain exceptions or strings) is folded into a
single presentation-safe ``NormalizedError``. The ``kind`` of the result is
the only input the retry policy looks at.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional, Union

import httpx
import structlog
from pydantic import ValidationError

logger = structlog.get_logger(__name__)

DEFAULT_ERROR_MESSAGE = "An unexpected error occurred"
NETWORK_ERROR_MESSAGE = "Network error. Please check your internet connection and try again."

_NETWORK_MARKERS = ("network", "fetch failed", "failed to fetch")
_NETWORK_CODES = {"NETWORK_ERROR", "ECONNABORTED"}

_STATUS_MESSAGES = {
    400: "Invalid request. Please check your input and try again.",
    401: "Unauthorized. Please check your credentials.",
    403: "Access forbidden. You don't have permission.",
    404: "Resource not found.",
    429: "Too many requests. Please try again later.",
}
_SERVER_ERROR_MESSAGE = "Server error. Please try again later."

_TYPE_PREFIX_RE = re.compile(
    r"^(?:Error|TypeError|SyntaxError|RangeError|ReferenceError|URIError|EvalError"
    r"|ValueError|RuntimeError|Exception):\s*",
    re.IGNORECASE,
)


class ErrorKind(str, Enum):
    NETWORK = "network"
    UPSTREAM_API = "upstream_api"
    VALIDATION = "validation"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class NormalizedError:
    """Canonical, presentation-safe error record."""

    kind: ErrorKind
    message: str
    code: Optional[Union[int, str]] = None
    cause: Any = field(default=None, compare=False, repr=False)

    def with_message(self, message: str) -> "NormalizedError":
        return replace(self, message=message)

    @property
    def status(self) -> Optional[int]:
        if isinstance(self.code, bool):
            return None
        if isinstance(self.code, int):
            return self.code
        if isinstance(self.code, str) and self.code.strip().isdigit():
            return int(self.code.strip())
        return None


@dataclass
class _ErrorShape:
    status: Optional[int] = None
    body: Any = None
    message: Optional[str] = None
    error: Optional[str] = None
    code: Any = None
    transport: bool = False
    issues: Optional[list[str]] = None


def clean_error_message(message: str) -> str:
    """Strip leading exception type prefixes such as ``TypeError:``."""
    cleaned = str(message or "").strip()
    while True:
        stripped = _TYPE_PREFIX_RE.sub("", cleaned, count=1).strip()
        if stripped == cleaned:
            return cleaned
        cleaned = stripped


def _as_status(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _first_status(source: Mapping[str, Any]) -> Optional[int]:
    for key in ("status", "status_code", "statusCode"):
        status = _as_status(source.get(key))
        if status is not None:
            return status
    return None


def _text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value
    return None


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _issue_text(item: Mapping[str, Any]) -> str:
    path = item.get("path", item.get("loc"))
    if isinstance(path, (list, tuple)):
        path = ".".join(str(part) for part in path)
    message = str(item.get("message") or item.get("msg") or "invalid value")
    return f"{path}: {message}" if path else message


def _is_issue_list(raw: Any) -> bool:
    if isinstance(raw, (str, bytes)) or not isinstance(raw, Sequence) or not raw:
        return False
    return all(isinstance(item, Mapping) and ("message" in item or "msg" in item) for item in raw)


def _shape_of(raw: Any) -> _ErrorShape:
    match raw:
        case httpx.TransportError():
            return _ErrorShape(message=str(raw) or type(raw).__name__, transport=True)
        case httpx.HTTPStatusError(response=response):
            return _ErrorShape(status=response.status_code, body=_response_body(response))
        case httpx.Response():
            return _ErrorShape(status=raw.status_code, body=_response_body(raw))
        case ValidationError():
            return _ErrorShape(issues=[_issue_text(item) for item in raw.errors()])
        case Mapping():
            return _ErrorShape(
                status=_first_status(raw),
                body=raw.get("data", raw.get("body")),
                message=_text(raw.get("message")),
                error=_text(raw.get("error")),
                code=raw.get("code"),
            )
        case str():
            return _ErrorShape(message=_text(raw))
        case BaseException():
            return _ErrorShape(
                status=_as_status(getattr(raw, "status_code", getattr(raw, "status", None))),
                body=getattr(raw, "body", getattr(raw, "data", None)),
                message=_text(str(raw)),
                code=getattr(raw, "code", None),
            )
        case _ if _is_issue_list(raw):
            return _ErrorShape(issues=[_issue_text(item) for item in raw])
        case _:
            return _ErrorShape()


def _extract_message(shape: _ErrorShape) -> str:
    raw_message = None
    if isinstance(shape.body, Mapping):
        raw_message = _text(shape.body.get("message")) or _text(shape.body.get("error"))
    raw_message = raw_message or shape.message or shape.error
    if not raw_message:
        return DEFAULT_ERROR_MESSAGE
    return clean_error_message(raw_message) or DEFAULT_ERROR_MESSAGE


def _is_network(shape: _ErrorShape, message: str) -> bool:
    if shape.transport:
        return True
    if isinstance(shape.code, str) and shape.code.upper() in _NETWORK_CODES:
        return True
    candidates = [message, shape.message or "", shape.error or ""]
    lowered = " ".join(candidates).lower()
    return any(marker in lowered for marker in _NETWORK_MARKERS)


def _status_message(status: int, message: str) -> str:
    if message != DEFAULT_ERROR_MESSAGE:
        return message
    if status >= 500:
        return _SERVER_ERROR_MESSAGE
    return _STATUS_MESSAGES.get(status, message)


def normalize(raw: Any) -> NormalizedError:
    """
    Classify an arbitrary error value into a ``NormalizedError``.

    Classification order is network, upstream API (HTTP status in
    [400, 600)), validation, then unknown. Never raises.
    """
    if isinstance(raw, NormalizedError):
        return raw
    try:
        shape = _shape_of(raw)
        message = _extract_message(shape)
    except Exception:  # noqa: BLE001 - normalization must be total
        return NormalizedError(kind=ErrorKind.UNKNOWN, message=DEFAULT_ERROR_MESSAGE, cause=raw)

    if _is_network(shape, message):
        return NormalizedError(kind=ErrorKind.NETWORK, message=NETWORK_ERROR_MESSAGE, cause=raw)

    if shape.status is not None and 400 <= shape.status < 600:
        return NormalizedError(
            kind=ErrorKind.UPSTREAM_API,
            message=_status_message(shape.status, message),
            code=shape.status,
            cause=raw,
        )

    if shape.issues:
        return NormalizedError(kind=ErrorKind.VALIDATION, message="; ".join(shape.issues), cause=raw)

    return NormalizedError(kind=ErrorKind.UNKNOWN, message=message, cause=raw)


def get_error_message(raw: Any) -> str:
    return normalize(raw).message


def should_log(error: NormalizedError) -> bool:
    return error.kind in (ErrorKind.UPSTREAM_API, ErrorKind.NETWORK, ErrorKind.UNKNOWN)


def log_error(error: NormalizedError, log: Any = None) -> None:
    """Report a terminal error through the structured logger."""
    if not should_log(error):
        return
    (log or logger).error(
        "learnmap_request_failed",
        kind=error.kind.value,
        error_message=error.message,
        code=error.code,
        cause=repr(error.cause) if error.cause is not None else None,
    )
