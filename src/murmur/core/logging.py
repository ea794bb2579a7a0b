# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Murmur Contributors

"""Logging for the Murmur privacy gate.

Log lines must never carry anything that identifies a submitter or reveals
what they wrote. Structured context travels on ``extra={"extra_data": ...}``
and every handler installed by :func:`configure_logging` carries a
:class:`RedactionFilter` that scrubs that context before a formatter sees it.

Two output shapes are supported: one JSON object per line for log shippers,
and a compact text line for people watching a terminal. Each request handled
by the server runs under a correlation ID that both shapes include.
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

SCRUBBED_PLACEHOLDER = "[SCRUBBED]"
REDACTED_PLACEHOLDER = "[REDACTED]"

# Slack identifiers that would tie a log line back to a person or channel
SLACK_ID_FIELDS = frozenset(
    {
        "user_id",
        "team_id",
        "channel_id",
        "slack_user_id",
        "slackuserid",
        "teamid",
        "channelid",
        "bot_user_id",
        "enterprise_id",
        "authed_user",
        "trigger_id",
        "response_url",
    }
)

# Nested Slack objects that collapse to an opaque stub
SLACK_OBJECT_FIELDS = frozenset({"user", "team", "channel"})

# Free text and identity fields
CONTENT_FIELDS = frozenset(
    {
        "content",
        "body",
        "title",
        "text",
        "email",
        "name",
        "identity",
        "ip",
        "ip_address",
        "user_agent",
        "useragent",
        "behavior",
        "impact",
        "situation",
    }
)

_request_cid: ContextVar[str | None] = ContextVar("murmur_correlation_id", default=None)


def get_correlation_id() -> str | None:
    """Correlation ID of the request being handled, if any."""
    return _request_cid.get()


@contextmanager
def correlation_context(correlation_id: str | None = None) -> Iterator[str]:
    """Run a block under a correlation ID, minting a random one when none is given."""
    cid = correlation_id or uuid.uuid4().hex
    token = _request_cid.set(cid)
    try:
        yield cid
    finally:
        _request_cid.reset(token)


def _classify(key: Any) -> str | None:
    normalized = str(key).lower().replace("-", "_")
    if normalized in SLACK_ID_FIELDS:
        return "id"
    if normalized in SLACK_OBJECT_FIELDS:
        return "object"
    if normalized in CONTENT_FIELDS:
        return "content"
    return None


def scrub_log_context(data: Any) -> Any:
    """Return a copy of log context with identifiers and content removed.

    Slack ID fields become ``[SCRUBBED]``, nested ``user``/``team``/``channel``
    objects collapse to ``{"id": "[SCRUBBED]"}`` and content fields become
    ``[REDACTED]``. Key matching ignores case and treats ``-`` as ``_``.
    Anything else is walked recursively and kept.
    """
    if isinstance(data, (list, tuple)):
        return [scrub_log_context(item) for item in data]
    if not isinstance(data, dict):
        return data

    scrubbed: dict[str, Any] = {}
    for key, value in data.items():
        kind = _classify(key)
        if kind == "id":
            scrubbed[key] = SCRUBBED_PLACEHOLDER
        elif kind == "object":
            scrubbed[key] = {"id": SCRUBBED_PLACEHOLDER}
        elif kind == "content":
            scrubbed[key] = REDACTED_PLACEHOLDER
        else:
            scrubbed[key] = scrub_log_context(value)
    return scrubbed


class RedactionFilter(logging.Filter):
    """Scrubs ``extra_data`` on a record in place. Never drops records."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = getattr(record, "extra_data", None)
        if context is not None:
            record.extra_data = scrub_log_context(context)
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record.

    Warnings and above also carry the emitting source location so alerts
    can be traced without reproducing them.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        cid = get_correlation_id()
        if cid:
            entry["correlation_id"] = cid
        if record.levelno >= logging.WARNING:
            entry["source"] = {"file": record.pathname, "line": record.lineno, "function": record.funcName}
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        if hasattr(record, "extra_data"):
            entry["extra"] = record.extra_data
        return json.dumps(entry, default=str)


class StandardFormatter(logging.Formatter):
    """Single-line text output for terminals, colored when stderr is a TTY."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    DIM = "\033[90m"
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True):
        super().__init__(fmt="%(asctime)s %(levelname)s %(name)s: %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
        self.use_colors = use_colors and sys.stderr.isatty()

    def _paint(self, color: str, text: str) -> str:
        return f"{color}{text}{self.RESET}" if self.use_colors else text

    def format(self, record: logging.LogRecord) -> str:
        # Work on a copy; other handlers format the same record
        shown = logging.makeLogRecord(record.__dict__)

        cid = get_correlation_id()
        if cid:
            shown.msg = f"{self._paint(self.DIM, f'[{cid[:8]}]')} {shown.msg}"
        shown.levelname = self._paint(self.LEVEL_COLORS.get(record.levelname, ""), record.levelname)

        line = super().format(shown)
        context = getattr(record, "extra_data", None)
        if context:
            line += " " + json.dumps(context, default=str)
        return line


def _resolve_level(level: str | int, configured: str) -> int:
    # An explicit non-default argument wins over MURMUR_LOG_LEVEL
    chosen = configured if level == "INFO" else level
    if isinstance(chosen, int):
        return chosen
    return getattr(logging, str(chosen).upper(), logging.INFO)


def _wants_json(json_format: bool | None, configured: str) -> bool:
    if json_format is not None:
        return json_format
    mode = configured.lower()
    if mode in ("json", "text"):
        return mode == "json"
    return not sys.stderr.isatty()


def configure_logging(
    level: str | int = "INFO",
    json_format: bool | None = None,
    log_file: str | None = None,
) -> None:
    """Install Murmur's handlers on the root logger.

    Existing root handlers are removed. Console output goes to stderr; when
    a log file is configured it always receives JSON. Both handlers scrub
    structured context.

    Args:
        level: Log level name or number. ``"INFO"`` defers to MURMUR_LOG_LEVEL.
        json_format: Force JSON (True) or text (False). None reads
            MURMUR_LOG_FORMAT and falls back to JSON when stderr is not a TTY.
        log_file: Optional path; None reads MURMUR_LOG_FILE.
    """
    from .config import get_config

    config = get_config()
    redaction = RedactionFilter()

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(JSONFormatter() if _wants_json(json_format, config.log_format) else StandardFormatter())
    handlers: list[logging.Handler] = [console]

    path = config.log_file if log_file is None else log_file
    if path:
        to_file = logging.FileHandler(path)
        to_file.setFormatter(JSONFormatter())
        handlers.append(to_file)

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.setLevel(_resolve_level(level, config.log_level))
    for handler in handlers:
        handler.addFilter(redaction)
        root.addHandler(handler)

    for noisy in ("uvicorn.access", "httpx", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Return the named logger; use ``__name__``."""
    return logging.getLogger(name)
