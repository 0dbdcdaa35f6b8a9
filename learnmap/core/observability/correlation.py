from __future__ import annotations

import logging
import uuid
from contextvars import ContextVar
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

CORRELATION_HEADER = "X-Correlation-ID"

correlation_id_ctx: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)


def get_correlation_id() -> Optional[str]:
    return correlation_id_ctx.get()


class CorrelationLogFilter(logging.Filter):
    """Exposes the current correlation id to stdlib log formatters."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or "-"
        return True


class CorrelationMiddleware(BaseHTTPMiddleware):
    """Reuses the inbound X-Correlation-ID or mints one, and echoes it back."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        incoming = str(request.headers.get(CORRELATION_HEADER) or "").strip()
        token = correlation_id_ctx.set(incoming or str(uuid.uuid4()))
        try:
            response = await call_next(request)
            response.headers[CORRELATION_HEADER] = get_correlation_id() or ""
            return response
        finally:
            correlation_id_ctx.reset(token)
