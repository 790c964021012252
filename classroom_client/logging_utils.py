from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
import os
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_QUIET_LOGGERS = ("urllib3", "asyncio", "markdown_it")


def configure_logging(
    level: str = "INFO",
    log_file: str | None = None,
    console: bool = False,
) -> None:
    root = logging.getLogger()
    root.setLevel(_resolve_level(level))

    for handler in list(root.handlers):
        if getattr(handler, "_classroom_handler", False):
            root.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    if log_file:
        directory = os.path.dirname(log_file)
        try:
            if directory:
                os.makedirs(directory, exist_ok=True)
            file_handler = RotatingFileHandler(
                log_file,
                maxBytes=5 * 1024 * 1024,
                backupCount=3,
                encoding="utf-8",
            )
        except OSError as error:
            print(f"Warning: cannot write log file {log_file}: {error}", file=sys.stderr)
        else:
            file_handler.setFormatter(formatter)
            file_handler._classroom_handler = True
            root.addHandler(file_handler)

    if console:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(formatter)
        stream_handler._classroom_handler = True
        root.addHandler(stream_handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _resolve_level(level: str) -> int:
    resolved = logging.getLevelName(level.upper())
    if isinstance(resolved, int):
        return resolved
    return logging.INFO
