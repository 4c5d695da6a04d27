"""
Structured logging using structlog.

JSON lines in production, colored console output locally. Field names
follow Datadog standard attributes (trace_id, usr.id, duration in ns) so
logs ship to any platform without remapping.

Usage:
    from apps.core.logging import get_logger

    logger = get_logger(__name__)
    logger.info("seat_update_applied", organization_id=42, seat_count=15)

The request middleware binds trace_id, usr.id and organization.id; every
line logged while handling the request carries them.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

SERVICE_NAME = "seatbill-backend"

# Third-party loggers that are chatty at INFO
QUIET_LOGGERS = {"stripe": logging.WARNING}


def _add_datadog_trace_fields(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Rename correlation_id to trace_id and force it to a string."""
    if "correlation_id" in event_dict:
        event_dict["trace_id"] = str(event_dict.pop("correlation_id"))
    return event_dict


def _convert_duration_to_nanoseconds(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    if "duration_ms" in event_dict:
        event_dict["duration"] = int(event_dict.pop("duration_ms") * 1_000_000)
    return event_dict


def _add_service(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def _shared_processors() -> list[Processor]:
    """Processors applied to structlog and plain stdlib records alike."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        _add_service,
        _add_datadog_trace_fields,
        _convert_duration_to_nanoseconds,
    ]


def configure_logging(json_format: bool = True, log_level: str = "INFO") -> None:
    """
    Route structlog and stdlib logging through one renderer on stdout.

    Django, the Stripe SDK and get_logger() callers all end up in the same
    format. Unknown level names fall back to INFO.
    """
    processors = _shared_processors()
    if json_format:
        processors.append(structlog.processors.format_exc_info)
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[*processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name, level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_contextvars(**kwargs: Any) -> None:
    """
    Bind fields to the current request context.

    Dotted keys need dict unpacking:
        bind_contextvars(**{"organization.id": str(org.id)})
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_contextvars() -> None:
    structlog.contextvars.clear_contextvars()
