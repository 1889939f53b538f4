"""
structlog setup for the service.

``LOG_FORMAT=json`` writes one JSON object per line to stdout; anything else
uses the coloured console renderer. Challenge tokens, HMAC secrets and
operation signatures are bearer material and are redacted from every event.
"""

import logging
import sys

import structlog

from reverse_captcha.config import settings

SENSITIVE_KEYS = frozenset({"token", "secret", "signature"})
REDACTED = "[redacted]"


def drop_sensitive_keys(logger, method_name: str, event_dict: dict) -> dict:
    """Replace token, secret and signature values before rendering."""
    for key in SENSITIVE_KEYS & event_dict.keys():
        event_dict[key] = REDACTED
    return event_dict


def setup_logging() -> None:
    """Configure structlog and route stdlib loggers to stdout. Call once at startup."""
    level = getattr(logging, settings.log_level.upper())

    if settings.log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.contextvars.merge_contextvars,
            drop_sensitive_keys,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # The sweep scheduler and uvicorn log through stdlib
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
