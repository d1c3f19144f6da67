"""Structured logging for the controller.

One structlog pipeline feeds stdout through the stdlib root logger, rendered
as JSON for log shipping or as coloured console lines for local runs. Worker
tasks bind ``worker_id`` and ``deployment_id`` so every line emitted while a
job runs can be traced back to it.

Usage:
    from deployd.logging_config import get_logger, setup_logging

    setup_logging("deployd", "json", "INFO")
    logger = get_logger(__name__)
    logger.info("deployment_enqueued", deployment_id=12)
"""

import logging
import sys
from typing import Any, Literal

import structlog
from structlog.types import EventDict, Processor

# Chatty client libraries kept at WARNING unless we run at DEBUG
NOISY_LOGGERS = ("docker", "urllib3", "kubernetes", "aiosqlite", "asyncio")

# Field names whose values never reach the log output
_REDACTED_KEYS = ("secret", "token", "password", "signature")
_REDACTED = "***"


def redact_sensitive(_logger: Any, _method: str, event_dict: EventDict) -> EventDict:
    """Mask values of fields that look like credentials."""
    for key in event_dict:
        if any(marker in key.lower() for marker in _REDACTED_KEYS):
            event_dict[key] = _REDACTED
    return event_dict


def _processors(log_format: str) -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.CallsiteParameterAdder(
            {
                structlog.processors.CallsiteParameter.FUNC_NAME,
                structlog.processors.CallsiteParameter.LINENO,
            }
        ),
        redact_sensitive,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer(sort_keys=False))
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=sys.stdout.isatty(),
                exception_formatter=structlog.dev.plain_traceback,
            )
        )
    return processors


def setup_logging(
    service_name: str = "deployd",
    log_format: Literal["json", "console"] = "console",
    log_level: str = "INFO",
) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        service_name: Bound to every line as ``service``.
        log_format: "json" for production, "console" for development.
        log_level: DEBUG, INFO, WARNING or ERROR.
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level, force=True)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    structlog.configure(
        processors=_processors(log_format),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(service=service_name)

    get_logger(__name__).debug(
        "logging_initialized", service=service_name, log_format=log_format, log_level=log_level
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Logger for ``name`` (usually the module's ``__name__``)."""
    return structlog.get_logger(name)


def bind_job_context(**values: object) -> None:
    """Bind job identifiers (deployment_id, worker_id, ...) for the current task."""
    structlog.contextvars.bind_contextvars(**values)


def get_job_context() -> dict[str, Any]:
    """Identifiers currently bound for this task."""
    return structlog.contextvars.get_contextvars()


def clear_job_context(*keys: str) -> None:
    """Drop job identifiers bound by :func:`bind_job_context`."""
    structlog.contextvars.unbind_contextvars(*keys)
