"""
Structured logging configuration using structlog.

Provides consistent, structured logging across all modules. Report payloads
and transport headers pass through a redactor so credentials configured for
delivery never end up in local diagnostics.
"""

import logging
import re
import sys
from typing import Any

import structlog

from faultline.shared.infrastructure.config import settings

_REDACTIONS = {
    r"Bearer\s+\S+": "Bearer [TOKEN_REDACTED]",
    r"(api[_-]?key|token|password|secret|authorization)['\"]?\s*[:=]\s*['\"]?([^'\"\s&]+)": r"\1=[REDACTED]",
}

_SENSITIVE_KEYS = {"authorization", "cookie", "x-api-key", "proxy-authorization"}


def privacy_redactor(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """
    Redact credentials from log events.

    Redacts:
    - Bearer tokens
    - key/token/password/secret assignments
    - Values stored under sensitive header names
    """
    if not getattr(settings, "log_redaction_enabled", True):
        return event_dict

    def redact_string(text: str) -> str:
        for pattern, replacement in _REDACTIONS.items():
            text = re.sub(pattern, replacement, text, flags=re.IGNORECASE)
        return text

    def redact(value: Any, key: str = "") -> Any:
        if key.lower() in _SENSITIVE_KEYS:
            return "[REDACTED]"
        if isinstance(value, str):
            return redact_string(value)
        if isinstance(value, dict):
            return {k: redact(v, str(k)) for k, v in value.items()}
        if isinstance(value, list):
            return [redact(v) for v in value]
        return value

    return {k: redact(v, k) for k, v in event_dict.items()}


def configure_logging(stream: Any = sys.stderr) -> None:
    """
    Configure structlog for the application.

    Sets up:
    - JSON output for production
    - Pretty console output for development
    - Log level from settings
    """
    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        privacy_redactor,
    ]

    if settings.is_development:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=stream.isatty() if hasattr(stream, "isatty") else False),
        ]
    else:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=stream,
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        force=True,
    )


def get_logger(name: str) -> Any:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Structured logger instance

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("exception_reported", name="TypeException")
    """
    return structlog.get_logger(name)
