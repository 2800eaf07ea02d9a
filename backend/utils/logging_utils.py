"""
Console logging setup and timing helpers.

Log records may carry ``duration_ms``, ``record_count`` or ``device`` extras;
the formatter appends them as a bracketed suffix.
"""

import logging
import sys
import time
from datetime import datetime
from typing import Any, Optional


class ColoredFormatter(logging.Formatter):
    """Single-line formatter, coloured by level when writing to a terminal."""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
    }
    RESET = '\033[0m'

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def format(self, record):
        timestamp = datetime.fromtimestamp(record.created).strftime('%Y-%m-%d %H:%M:%S.%f')[:-3]

        if self.use_color:
            level_str = f"{self.COLORS.get(record.levelname, '')}{record.levelname:8}{self.RESET}"
        else:
            level_str = f"{record.levelname:8}"

        location = record.name if record.funcName == '<module>' else f"{record.module}.{record.funcName}"

        extras = []
        if hasattr(record, 'device'):
            extras.append(f"device={record.device}")
        if hasattr(record, 'duration_ms'):
            extras.append(f"duration={record.duration_ms:.1f}ms")
        if hasattr(record, 'record_count'):
            extras.append(f"records={record.record_count}")
        extra_str = f" [{', '.join(extras)}]" if extras else ""

        line = f"{timestamp} | {level_str} | {location:30} | {record.getMessage()}{extra_str}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def setup_logging(level: str = "INFO") -> None:
    """
    Configure the root logger with the coloured console handler.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ColoredFormatter(use_color=sys.stdout.isatty()))
    handler.setLevel(getattr(logging, level.upper()))

    root.setLevel(getattr(logging, level.upper()))
    root.addHandler(handler)

    logging.getLogger('uvicorn').setLevel(logging.INFO)
    logging.getLogger('uvicorn.access').setLevel(logging.INFO)
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)
    # One line per remote request is too much at INFO
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('audit').setLevel(logging.INFO)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class LogTimer:
    """
    Context manager for timing operations with automatic logging.

    Usage:
        with LogTimer(logger, "Poll cycle") as timer:
            # ... do work ...
            timer.set_record_count(len(results))
    """

    def __init__(self, logger: logging.Logger, operation: str, level: int = logging.INFO):
        self.logger = logger
        self.operation = operation
        self.level = level
        self.start_time: Optional[float] = None
        self.record_count: Optional[int] = None
        self.extra_info: dict = {}

    def __enter__(self):
        self.start_time = time.perf_counter()
        self.logger.log(self.level, f"Starting: {self.operation}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        extra = {'duration_ms': (time.perf_counter() - self.start_time) * 1000}
        if self.record_count is not None:
            extra['record_count'] = self.record_count
        extra.update(self.extra_info)

        if exc_type is not None:
            self.logger.error(f"Failed: {self.operation} - {exc_val}", extra=extra)
        else:
            self.logger.log(self.level, f"Completed: {self.operation}", extra=extra)
        return False

    def set_record_count(self, count: int) -> None:
        self.record_count = count

    def add_info(self, key: str, value: Any) -> None:
        self.extra_info[key] = value
