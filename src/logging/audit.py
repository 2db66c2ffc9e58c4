"""Structured JSON audit logging for the gateway.

Logs go to stdout as JSON lines, with optional file output via the
AUDIT_LOG_FILE env var. Every record carries the ordinal of the request
being handled so all entries for one request can be correlated.

Credentials (virtual or real) must never reach the log. Call sites do not
pass them, and any audit field named like a credential is masked anyway.
"""

import json
import logging
import sys
import time
from datetime import datetime, timezone
from contextvars import ContextVar

from src.config.settings import Settings, get_settings

AUDIT_LOGGER_NAME = "gateway.audit"

# Ordinal of the request being handled (0 = outside a request)
request_ordinal_var: ContextVar[int] = ContextVar("request_ordinal", default=0)

# Audit fields whose values are replaced before formatting
CREDENTIAL_FIELDS = frozenset({
    "authorization",
    "api_key",
    "upstream_api_key",
    "openai_api_key",
    "virtual_key",
})
MASK = "[REDACTED]"


def resolve_log_level(name: str) -> int:
    """Numeric level for a level name such as "info" or "WARN"; INFO if unknown."""
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else logging.INFO


def mask_credentials(data: dict) -> dict:
    return {
        key: MASK if key.lower() in CREDENTIAL_FIELDS else value
        for key, value in data.items()
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per line: core fields, then masked audit_data."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "ordinal": request_ordinal_var.get(),
            "message": record.getMessage(),
        }
        audit_data = getattr(record, "audit_data", None)
        if audit_data:
            # Core fields win over same-named audit fields
            for key, value in mask_credentials(audit_data).items():
                entry.setdefault(key, value)
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _build_handlers(settings: Settings) -> list[logging.Handler]:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if settings.audit_log_file:
        handlers.append(logging.FileHandler(settings.audit_log_file, encoding="utf-8"))
    return handlers


def setup_logging(settings: Settings | None = None) -> None:
    """Point the audit logger at stdout (and the audit file, if set)."""
    settings = settings or get_settings()

    logger = get_audit_logger()
    logger.setLevel(resolve_log_level(settings.log_level))
    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()

    formatter = JSONFormatter()
    for handler in _build_handlers(settings):
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    # Audit lines stay out of the root logger and uvicorn's output
    logger.propagate = False


def get_audit_logger() -> logging.Logger:
    return logging.getLogger(AUDIT_LOGGER_NAME)


class RequestTimer:
    """Measures a block in milliseconds; used for upstream latency."""

    def __init__(self):
        self._started: float = 0.0
        self.elapsed_ms: float = 0.0

    def __enter__(self):
        self._started = time.perf_counter()
        return self

    def __exit__(self, *exc):
        self.elapsed_ms = round((time.perf_counter() - self._started) * 1000, 2)
