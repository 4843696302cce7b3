# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Logging setup for Trustbridge processes.

Two output shapes:
- JSON lines (one object per record) when logs go to a collector or a file
- Coloured text when a person is watching a terminal

Every record emitted inside ``attempt_context`` carries the federation
attempt it belongs to, so the discovery, routing and token-exchange lines of
one login can be grouped. Outbound form parameters pass through
``redact_params`` before they are logged.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

_log_context: ContextVar[Mapping[str, str] | None] = ContextVar("trustbridge_log_context", default=None)

# Record attributes (passed via ``extra=``) copied into JSON output
CONTEXT_FIELDS = ("network_id", "provider_id", "home_provider_id", "hop_count")

# Form keys whose values are credentials or one-time grants
SENSITIVE_PARAMS = frozenset({"code", "auth_req_id", "assertion", "credential", "password"})
_SENSITIVE_FRAGMENTS = ("token", "secret", "password")

REDACTED = "[REDACTED]"
MAX_LOGGED_VALUE = 500


def get_log_context() -> dict[str, str]:
    """Fields bound by the innermost ``attempt_context`` (empty outside one)."""
    return dict(_log_context.get() or {})


def get_attempt_id() -> str | None:
    return get_log_context().get("attempt_id")


@contextmanager
def attempt_context(attempt_id: str, **fields: str) -> Iterator[str]:
    """Tag every log record in this block with a federation attempt.

    Nested contexts inherit the outer fields and may override them.

    Example:
        with attempt_context(attempt.attempt_id, provider_id="uni-a"):
            logger.info("Exchanging code")
    """
    merged = {**get_log_context(), **fields, "attempt_id": attempt_id}
    token = _log_context.set(merged)
    try:
        yield attempt_id
    finally:
        _log_context.reset(token)


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return lowered in SENSITIVE_PARAMS or any(fragment in lowered for fragment in _SENSITIVE_FRAGMENTS)


def redact_params(data: Any) -> Any:
    """Copy of ``data`` that is safe to log.

    Values under credential-like keys are replaced with REDACTED, nested
    mappings and sequences are walked, and long strings are cut short.
    """
    if isinstance(data, Mapping):
        return {key: REDACTED if _is_sensitive(str(key)) else redact_params(value) for key, value in data.items()}
    if isinstance(data, (list, tuple)):
        return [redact_params(item) for item in data]
    if isinstance(data, str) and len(data) > MAX_LOGGED_VALUE:
        return data[:MAX_LOGGED_VALUE] + "..."
    return data


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with attempt context and routing fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(get_log_context())
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value

        if record.levelno >= logging.WARNING:
            entry["location"] = f"{record.module}:{record.lineno}"
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Readable single-line output, prefixed with the short attempt id."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    DIM = "\033[90m"
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True):
        super().__init__(fmt="%(asctime)s %(levelname)-8s %(name)s: %(message)s", datefmt="%H:%M:%S")
        self.use_colors = use_colors and sys.stderr.isatty()

    def _paint(self, text: str, color: str) -> str:
        return f"{color}{text}{self.RESET}" if self.use_colors else text

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        attempt_id = get_attempt_id()
        if attempt_id:
            line = self._paint(f"[{attempt_id[:8]}]", self.DIM) + " " + line
        if self.use_colors and record.levelno >= logging.WARNING:
            line = self._paint(line, self.LEVEL_COLORS.get(record.levelno, ""))
        return line


def _wants_json(log_format: str) -> bool:
    log_format = log_format.lower()
    if log_format in ("json", "text"):
        return log_format == "json"
    return not sys.stderr.isatty()


def configure_logging(
    level: str | int | None = None,
    json_format: bool | None = None,
    log_file: str | None = None,
) -> None:
    """Install Trustbridge handlers on the root logger.

    Unset arguments come from TRUSTBRIDGE_LOG_LEVEL, TRUSTBRIDGE_LOG_FORMAT
    (json, text, or empty to pick JSON whenever stderr is not a terminal) and
    TRUSTBRIDGE_LOG_FILE. The log file always receives JSON.
    """
    from .config import get_config

    config = get_config()
    level = config.log_level if level is None else level
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    if json_format is None:
        json_format = _wants_json(config.log_format)
    log_file = config.log_file if log_file is None else log_file

    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(JSONFormatter() if json_format else ConsoleFormatter())
    root.addHandler(console)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(JSONFormatter())
        root.addHandler(file_handler)

    for noisy in ("aiohttp", "httpx", "asyncio", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
