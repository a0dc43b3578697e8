"""
core/logging.py - Structured JSON logging.

All logs include:
- timestamp (ISO 8601)
- level
- logger
- message
- context (chain_id, endpoint, attempt, latency_ms, etc.)

Contextual fields are passed only via extra={"context": {...}}.
"""

import json
import logging
import re
import sys
from datetime import datetime, timezone
from typing import Any

# Fields merged into every JSON record (set by entry points)
_global_context: dict[str, Any] = {}

# Path segments that carry provider API keys (Alchemy /v2/<key>, Infura /v3/<key>)
_API_KEY_SEGMENT = re.compile(r"(/v[23]/)([^/?#]+)")


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter for structured logging.

    Output format:
    {
        "timestamp": "2026-01-04T12:00:00.000Z",
        "level": "WARNING",
        "logger": "licensekit.chains.retry",
        "message": "RPC attempt failed",
        "context": {
            "endpoint": "https://eth-mainnet.g.alchemy.com/v2/abcd****wxyz",
            "attempt": 1,
            "latency_ms": 50
        }
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = {}
        context.update(_global_context)

        if hasattr(record, "context") and record.context:
            context.update(record.context)

        if record.exc_info:
            context["exception"] = self.formatException(record.exc_info)

        if context:
            log_entry["context"] = context

        return json.dumps(log_entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """One line per record for terminals; shows at most four context fields."""

    max_fields = 4

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        line = f"{timestamp} | {record.levelname:<8} | {record.name} | {record.getMessage()}"

        context = getattr(record, "context", None)
        if context:
            items = list(context.items())
            shown = ", ".join(f"{k}={v}" for k, v in items[:self.max_fields])
            hidden = len(items) - self.max_fields
            if hidden > 0:
                shown += f", ... (+{hidden} more)"
            line += f" | {shown}"

        return line


class ContextAdapter(logging.LoggerAdapter):
    """
    Carries fixed fields (chain_id, endpoint, ...) into every record.

    Fields passed per call in extra={"context": ...} override the fixed ones.
    """

    def process(
        self, msg: str, kwargs: dict[str, Any]
    ) -> tuple[str, dict[str, Any]]:
        call_context = kwargs.get("extra", {}).get("context", {})
        kwargs["extra"] = {"context": {**self.extra, **call_context}}
        return msg, kwargs


def set_global_context(**kwargs: Any) -> None:
    """Add process-wide fields (service, version) to every JSON record."""
    _global_context.update(kwargs)


def clear_global_context() -> None:
    global _global_context
    _global_context = {}


def get_logger(name: str, **context: Any) -> ContextAdapter:
    """
    Logger whose records always carry ``context``.

        logger = get_logger("licensekit.rpc", chain_id=137)
        logger.info("RPC provider ready", extra={"context": {"block_number": 50000000}})
    """
    return ContextAdapter(logging.getLogger(name), context)


def mask_sensitive(value: str) -> str:
    """Mask a secret for logging: first 4 + **** + last 4."""
    if len(value) <= 8:
        return "****"
    return value[:4] + "****" + value[-4:]


def mask_url(url: str) -> str:
    """
    Mask the API key segment of a provider URL.

    https://polygon-mainnet.g.alchemy.com/v2/supersecretkey
    -> https://polygon-mainnet.g.alchemy.com/v2/supe****tkey
    """
    return _API_KEY_SEGMENT.sub(
        lambda m: m.group(1) + mask_sensitive(m.group(2)), url
    )


def setup_logging(
    level: str = "INFO",
    json_output: bool = True,
    log_file: str | None = None,
) -> None:
    """
    Route all records to stderr, and optionally to a JSON file.

    stdout stays free for command output. Calling this again replaces the
    previous handlers.

    Args:
        level: DEBUG, INFO, WARNING or ERROR
        json_output: JSON lines on stderr; False for ConsoleFormatter
        log_file: Extra JSON-lines file
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(JSONFormatter() if json_output else ConsoleFormatter())
    root_logger.addHandler(stderr_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    # httpx logs every request at INFO
    for name in ("httpx", "httpcore", "asyncio"):
        logging.getLogger(name).setLevel(logging.WARNING)
