"""
Logging Setup

Configures stdlib logging from the validated `Config`:

- Level from LOG_LEVEL (`trace` maps to a custom TRACE level, `warn` to WARNING)
- Text or JSON lines from LOG_FORMAT
- Console output always, plus a file when LOG_FILE_PATH is set

`configure_logging()` is a context manager. Handlers it installs are
removed and closed when the context exits, which is how the orchestrator
flushes the log file at shutdown.
"""

from __future__ import annotations

import contextlib
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List

from .errors import ConfigFileNotFoundError
from ..config import Config


TRACE = 5
logging.addLevelName(TRACE, "TRACE")

_LEVELS: Dict[str, int] = {
    "trace": TRACE,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

TEXT_FORMAT = "%(asctime)s %(levelname)-5s %(name)s: %(message)s"

DEFAULT_LOG_FILE_NAME = "ripple.log"


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log_record: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info and record.exc_info[0] is not None:
            log_record["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        return json.dumps(log_record, default=str)


def resolve_level(name: str) -> int:
    return _LEVELS[name.lower()]


def _build_formatter(log_format: str) -> logging.Formatter:
    if log_format.lower() == "json":
        return JsonFormatter()
    return logging.Formatter(TEXT_FORMAT)


def _open_file_handler(log_path: str) -> logging.FileHandler:
    path = Path(log_path)
    if not path.name:
        path = path / DEFAULT_LOG_FILE_NAME

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(path, encoding="utf-8")
    except OSError as exc:
        raise ConfigFileNotFoundError(path=str(path), details=str(exc)) from exc


@contextlib.contextmanager
def configure_logging(config: Config) -> Iterator[logging.Logger]:
    """
    Install Ripple's log handlers on the root logger for the duration of
    the context.

    Yields
    ------
    logging.Logger
        The `ripple` package logger.

    Raises
    ------
    ConfigFileNotFoundError
        LOG_FILE_PATH is set but the file cannot be created.
    """
    root = logging.getLogger()
    previous_level = root.level
    formatter = _build_formatter(config.log_format)

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if config.log_file_path:
        handlers.append(_open_file_handler(config.log_file_path))

    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(resolve_level(config.log_level))

    try:
        yield logging.getLogger("ripple")
    finally:
        for handler in handlers:
            root.removeHandler(handler)
            handler.close()
        root.setLevel(previous_level)
