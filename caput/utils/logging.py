"""structlog configuration routed through stdlib logging."""

from __future__ import annotations

import logging
import re
import sys
from contextlib import AbstractContextManager
from pathlib import Path

import structlog

# Credentials can show up in URLs (Gemini takes ?key=) and in error strings
_SECRET_RE = re.compile(
    r"(api_key|x-api-key|key|token|secret|authorization)([\"']?\s*[:=]\s*[\"']?)[\w\-\.]+",
    re.IGNORECASE,
)

# Prompts and tool outputs are logged at DEBUG and can be very large
MAX_VALUE_LENGTH = 2000

_NOISY_LOGGERS = ("httpx", "httpcore", "anthropic", "aiosqlite")


def _redact_secrets(
    _logger: structlog.types.WrappedLogger,
    _method: str,
    event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    for key, value in event_dict.items():
        if isinstance(value, str) and _SECRET_RE.search(value):
            event_dict[key] = _SECRET_RE.sub(r"\1\2***REDACTED***", value)
    return event_dict


def _clip_long_values(
    _logger: structlog.types.WrappedLogger,
    _method: str,
    event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    for key, value in event_dict.items():
        if isinstance(value, str) and len(value) > MAX_VALUE_LENGTH:
            event_dict[key] = f"{value[:MAX_VALUE_LENGTH]}... [{len(value)} chars]"
    return event_dict


def setup_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: str | Path | None = None,
) -> None:
    """Configure structlog. Console output goes to stderr; ``log_file`` adds a JSON copy."""
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    if numeric_level <= logging.DEBUG:
        print(
            "WARNING: DEBUG logging is enabled. Goals, prompts and tool "
            "parameters may appear in logs.",
            file=sys.stderr,
        )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            _redact_secrets,
            _clip_long_values,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    console: structlog.types.Processor = (
        structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    )
    handlers: list[logging.Handler] = [_handler(logging.StreamHandler(sys.stderr), console)]
    if log_file is not None:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(_handler(
            logging.FileHandler(log_file, encoding="utf-8"),
            structlog.processors.JSONRenderer(),
        ))

    root = logging.getLogger()
    root.handlers[:] = handlers
    root.setLevel(numeric_level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))


def _handler(handler: logging.Handler, renderer: structlog.types.Processor) -> logging.Handler:
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    ))
    return handler


def bind_goal(goal_id: str) -> AbstractContextManager[object]:
    """Tag every log line emitted inside the block with ``goal_id``."""
    return structlog.contextvars.bound_contextvars(goal_id=goal_id)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
