"""Structured Logging — JSON formatter and one-time setup for the chatcore loggers.

Invariants:
    - All logs include timestamp, level, logger name, and message
    - Pipeline extra fields (session_id, tool_name, error_code, attempt, provider,
      state, tokens) surfaced when present
    - setup_logging() is idempotent: calling it again replaces its own handler only

Design Decisions:
    - JSONFormatter over third-party libs: zero dependencies, full control
    - Handler attached to the "chatcore" logger, not root: a library must not
      reconfigure its host's logging
"""

import logging
import json
from datetime import datetime, timezone

LOGGER_NAME = "chatcore"

EXTRA_KEYS = (
    "session_id", "tool_name", "error_code", "attempt", "provider", "model",
    "state", "tokens", "target_tokens", "freed_tokens", "delay_ms",
    "execution_time_ms", "input_tokens", "output_tokens", "retryable",
)


class JSONFormatter(logging.Formatter):
    """Format logs as JSON for structured logging in production."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in EXTRA_KEYS:
            val = record.__dict__.get(key)
            if val is not None:
                log[key] = val
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False, default=str)


class _ChatCoreHandler(logging.StreamHandler):
    """Marker type so setup_logging() can find the handler it installed."""


def setup_logging(level: str = "INFO", fmt: str = "json") -> logging.Logger:
    """Configure the chatcore logger hierarchy."""
    logger = logging.getLogger(LOGGER_NAME)
    for existing in list(logger.handlers):
        if isinstance(existing, _ChatCoreHandler):
            logger.removeHandler(existing)

    handler = _ChatCoreHandler()
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s - %(message)s",
        ))
    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    return logger
