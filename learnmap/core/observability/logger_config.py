import logging

import structlog
from structlog.contextvars import merge_contextvars

from learnmap.core.observability.correlation import CorrelationLogFilter, get_correlation_id


def add_context_vars(_, __, event_dict):
    """
    Processor that injects the request correlation id and renames
    structlog's ``event`` key to the canonical ``message`` field.
    """
    cid = get_correlation_id()
    if cid:
        event_dict["correlation_id"] = cid

    if "event" in event_dict:
        event_dict["message"] = event_dict.pop("event")

    return event_dict


def configure_structlog(log_level: str = "INFO") -> None:
    """
    Configures structlog to replace standard logging with canonical JSON.
    """
    handler = logging.StreamHandler()
    handler.addFilter(CorrelationLogFilter())

    # Standard formatter for non-JSON logs (uvicorn startup, etc.)
    handler.setFormatter(
        logging.Formatter(" [%(asctime)s] [%(levelname)s] [trace_id=%(correlation_id)s] %(name)s: %(message)s")
    )

    resolved_level = getattr(logging, str(log_level or "INFO").upper(), logging.INFO)

    logging.basicConfig(format="%(message)s", level=resolved_level, handlers=[handler], force=True)

    structlog.configure(
        processors=[
            merge_contextvars,
            add_context_vars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
