# -*- coding: utf-8 -*-
"""
Centralized logging configuration for the host bootstrap.

Console output follows a simple line protocol: every line starts with a
level tag ([INFO], [SUCCESS], [WARNING], [ERROR]). Records below ERROR are
written to standard output, ERROR and above to standard error. An optional
log file receives JSON-structured records for later inspection.
"""

import json
import logging
import os
import socket
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, TextIO, Union

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

ROOT_LOGGER_NAME = "host_bootstrap"

LEVEL_TAGS: Dict[int, str] = {
    logging.DEBUG: "DEBUG",
    logging.INFO: "INFO",
    SUCCESS: "SUCCESS",
    logging.WARNING: "WARNING",
    logging.ERROR: "ERROR",
    logging.CRITICAL: "ERROR",
}

# ANSI colours per level tag.
LEVEL_COLORS: Dict[str, str] = {
    "DEBUG": "\033[1;37m",
    "INFO": "\033[1;34m",
    "SUCCESS": "\033[1;32m",
    "WARNING": "\033[1;33m",
    "ERROR": "\033[1;31m",
}
COLOR_RESET = "\033[0m"

_STANDARD_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime"}


def level_tag(levelno: int) -> str:
    """Returns the console tag for a numeric logging level."""
    if levelno in LEVEL_TAGS:
        return LEVEL_TAGS[levelno]
    if levelno >= logging.ERROR:
        return "ERROR"
    if levelno >= logging.WARNING:
        return "WARNING"
    if levelno >= SUCCESS:
        return "SUCCESS"
    if levelno >= logging.INFO:
        return "INFO"
    return "DEBUG"


class LevelTagFormatter(logging.Formatter):
    """
    Formats records as ``[TAG] message``.

    Multi-line messages get the tag on every line so that each output line
    can be classified on its own.
    """

    def __init__(self, use_color: bool = False):
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        tag = level_tag(record.levelno)
        if self.use_color:
            prefix = f"{LEVEL_COLORS.get(tag, '')}[{tag}]{COLOR_RESET}"
        else:
            prefix = f"[{tag}]"

        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return "\n".join(
            f"{prefix} {line}" for line in message.splitlines() or [""]
        )


class MaxLevelFilter(logging.Filter):
    """Lets through records strictly below `max_level`."""

    def __init__(self, max_level: int):
        super().__init__()
        self.max_level = max_level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < self.max_level


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for the optional log file.

    Formats log records as JSON with timestamp, level, logger, message,
    source location and any extra fields passed via ``extra=``.
    """

    def __init__(self, service_name: str = ROOT_LOGGER_NAME):
        super().__init__()
        self.service_name = service_name
        self.hostname = os.environ.get("HOSTNAME") or socket.gethostname()

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": level_tag(record.levelno),
            "service": self.service_name,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "hostname": self.hostname,
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        extra_fields = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _STANDARD_RECORD_ATTRS
        }
        if extra_fields:
            log_entry["extra"] = extra_fields

        return json.dumps(log_entry, ensure_ascii=False, default=str)


def setup_logging(
    log_level: Union[str, int] = "INFO",
    use_color: bool = True,
    log_file_path: Optional[Union[str, Path]] = None,
    stdout: Optional[TextIO] = None,
    stderr: Optional[TextIO] = None,
) -> logging.Logger:
    """
    Set up console (and optionally file) logging for a bootstrap run.

    Args:
        log_level: Logging level name or number (DEBUG, INFO, SUCCESS, ...).
        use_color: Colour the level tags when the stream is a terminal.
        log_file_path: Path of a JSON log file. Disabled when None.
        stdout: Stream for records below ERROR. Defaults to sys.stdout.
        stderr: Stream for ERROR and above. Defaults to sys.stderr.

    Returns:
        The configured bootstrap logger.
    """
    if isinstance(log_level, str):
        numeric_level = logging.getLevelName(log_level.upper())
        if not isinstance(numeric_level, int):
            numeric_level = logging.INFO
    else:
        numeric_level = log_level

    out_stream = stdout if stdout is not None else sys.stdout
    err_stream = stderr if stderr is not None else sys.stderr

    # Module loggers propagate here, so the root logger carries the handlers.
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    out_handler = logging.StreamHandler(out_stream)
    out_handler.setLevel(numeric_level)
    out_handler.addFilter(MaxLevelFilter(logging.ERROR))
    out_handler.setFormatter(
        LevelTagFormatter(use_color=use_color and _is_tty(out_stream))
    )
    root_logger.addHandler(out_handler)

    err_handler = logging.StreamHandler(err_stream)
    err_handler.setLevel(max(numeric_level, logging.ERROR))
    err_handler.setFormatter(
        LevelTagFormatter(use_color=use_color and _is_tty(err_stream))
    )
    root_logger.addHandler(err_handler)

    if log_file_path:
        file_handler = logging.FileHandler(str(log_file_path))
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.debug(
        "Logging initialized",
        extra={
            "log_level": logging.getLevelName(numeric_level),
            "color": use_color,
            "file_enabled": bool(log_file_path),
        },
    )
    return logger


def _is_tty(stream: TextIO) -> bool:
    isatty = getattr(stream, "isatty", None)
    try:
        return bool(isatty and isatty())
    except ValueError:
        return False
