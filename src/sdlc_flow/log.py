"""Logging configuration for flow runs.

Configures structlog on top of stdlib logging. Library modules keep using
``logging.getLogger(__name__)``; their records pass through the same
``ProcessorFormatter`` chain, which masks credentials before rendering.

Usage::

    from sdlc_flow.log import configure_logging

    configure_logging(level='DEBUG')  # Call once at startup
"""

from __future__ import annotations

import logging
import os
import re
import sys
from typing import Any

import structlog

REDACT_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"(Bearer\s+)[^\s\"']+"), r"\1[REDACTED]"),
    (re.compile(r"(Basic\s+)[A-Za-z0-9+/=]+"), r"\1[REDACTED]"),
    (re.compile(r"(token[\"']?\s*[=:]\s*[\"']?)[^\s,&\"']+", re.IGNORECASE), r"\1[REDACTED]"),
    (re.compile(r"(secret[\"']?\s*[=:]\s*[\"']?)[^\s,&\"']+", re.IGNORECASE), r"\1[REDACTED]"),
    (re.compile(r"(\w*pass(?:word)?[\"']?\s*[=:]\s*[\"']?)[^\s,&\"']+", re.IGNORECASE), r"\1[REDACTED]"),
    (re.compile(r"(-u\s+[^:\s]+:)\S+"), r"\1[REDACTED]"),
]

_configured = False


def redact(text: str) -> str:
    for pattern, replacement in REDACT_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def redact_secrets(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Mask credentials in the event and in every string value."""
    for key, value in event_dict.items():
        if isinstance(value, str):
            event_dict[key] = redact(value)
    return event_dict


def configure_logging(
    *,
    level: str | None = None,
    json_output: bool | None = None,
) -> None:
    """Configure structlog and stdlib logging.

    Args:
        level: Log level name. Defaults to LOG_LEVEL env var or INFO.
        json_output: Emit JSON lines instead of console output. Defaults
            to LOG_FORMAT env var == "json".
    """
    global _configured
    if _configured:
        return
    _configured = True

    level = level or os.environ.get('LOG_LEVEL', 'INFO')
    if json_output is None:
        json_output = os.environ.get('LOG_FORMAT', 'console') == 'json'

    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt='%H:%M:%S'),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            redact_secrets,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Request lines from the HTTP stack would repeat every poll.
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('httpcore').setLevel(logging.WARNING)
