"""
Structured logging for fizzy-cli.

Command output goes to stdout; diagnostics go to stderr through the
``fizzy.cli`` logger configured here. With ``jsonl`` enabled each record
is a single JSON object, which keeps ``--verbose`` traces greppable and
easy to feed to ``jq``.

Example log entry:
    {"ts": "2026-01-15T10:30:00Z", "level": "WARNING", "event": "http_retry",
     "module": "client", "msg": "Retrying GET boards",
     "extra": {"attempt": 1, "delay_s": 1.04, "reason": "rate_limited"}}
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

LOGGER_NAME = "fizzy.cli"

_SENSITIVE_QUERY_KEYS = frozenset({"token", "access_token", "session_token"})


@dataclass(frozen=True)
class LogSettings:
    """
    How the CLI logger should be wired.

    Attributes:
        level: Threshold name; ``--verbose`` maps to DEBUG, ``--quiet`` to ERROR.
        log_file: Extra JSONL sink next to stderr, set by ``--log-file``.
        jsonl: Render stderr records as JSON instead of the plain layout.
    """
    level: str = "WARNING"
    log_file: Path | None = None
    jsonl: bool = False


class JsonLineFormatter(logging.Formatter):
    """Logging formatter that writes one JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        event = getattr(record, "event", "log")
        extra = getattr(record, "extra", {})
        if not isinstance(extra, dict):
            extra = {"value": extra}

        payload = {
            "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "event": event,
            "module": record.module,
            "msg": record.getMessage(),
            "extra": extra,
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class PlainFormatter(logging.Formatter):
    """``LEVEL event: message key=value ...`` for interactive terminals."""

    def format(self, record: logging.LogRecord) -> str:
        event = getattr(record, "event", None)
        extra = getattr(record, "extra", {})
        head = f"{record.levelname.lower()}: {record.getMessage()}"
        if event:
            head = f"{record.levelname.lower()} {event}: {record.getMessage()}"
        if isinstance(extra, dict) and extra:
            head += " " + " ".join(f"{key}={value}" for key, value in extra.items())
        return head


def build_logger(settings: LogSettings) -> logging.Logger:
    """
    Return the ``fizzy.cli`` logger with fresh handlers.

    The logger does not propagate to the root logger. Repeated calls drop
    the handlers installed by the previous call, so tests and the CLI can
    each configure it independently. The file sink is always JSONL.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(settings.level)
    logger.handlers.clear()
    logger.propagate = False

    formatter: logging.Formatter = JsonLineFormatter() if settings.jsonl else PlainFormatter()

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if settings.log_file:
        file_handler = logging.FileHandler(settings.log_file, encoding="utf-8")
        file_handler.setFormatter(JsonLineFormatter())
        logger.addHandler(file_handler)

    return logger


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    message: str,
    *,
    exc_info: Any = None,
    **extra: Any,
) -> None:
    """
    Emit ``message`` tagged with an ``event`` name and keyword fields.

    The formatters read ``event`` and ``extra`` back off the record, so
    ``extra`` keys never collide with ``LogRecord`` attributes.

    Example:
        >>> log_event(logger, logging.WARNING, "http_retry",
        ...           "Retrying GET boards", attempt=1, delay_s=1.0)
    """
    logger.log(level, message, extra={"event": event, "extra": extra}, exc_info=exc_info)


def mask_url(url: str) -> str:
    """Mask token-like query parameters before a URL is logged; unparsable URLs pass through."""
    try:
        parsed = urlsplit(url)
    except ValueError:
        return url
    if not parsed.query:
        return url
    pairs = parse_qsl(parsed.query, keep_blank_values=True)
    masked = [(key, "***" if key.lower() in _SENSITIVE_QUERY_KEYS else value) for key, value in pairs]
    return urlunsplit((parsed.scheme, parsed.netloc, parsed.path, urlencode(masked, doseq=True), parsed.fragment))
