# src/complaint_desk/logging_setup.py

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FILE_NAME = "complaint_desk.log"

# Minimum console level per logger-name prefix, first match wins.
# The polling feed and the SQLite adapter log every event at DEBUG/INFO,
# which would drown the REPL prompt.
_CONSOLE_FLOORS: tuple[tuple[str, int], ...] = (
    ("complaint_desk.store.", logging.WARNING),
    ("complaint_desk.", logging.NOTSET),
    ("py.warnings", logging.ERROR),
)

# Third-party loggers capped at the logger itself (affects the file too).
_LIBRARY_LEVELS = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "nio": logging.INFO,
}


class _ConsoleNoiseFilter(logging.Filter):
    """Console-only filter: our logs pass, store adapters need WARNING+, anything else ERROR+."""

    def filter(self, record: logging.LogRecord) -> bool:
        for prefix, floor in _CONSOLE_FLOORS:
            if record.name.startswith(prefix):
                return record.levelno >= floor
        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path = ".local/complaint_desk",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    max_bytes: int = 2_000_000,
    backups: int = 3,
) -> Path:
    """
    Configure root logging once, before the first log call.

    - stderr: console_level, filtered so the REPL stays readable
    - <log_dir>/complaint_desk.log: file_level, everything, rotated by size

    Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)-7s %(threadName)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(fmt)
    console.addFilter(_ConsoleNoiseFilter())
    root.addHandler(console)

    file_handler = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backups, encoding="utf-8")
    file_handler.setLevel(file_level)
    file_handler.setFormatter(fmt)
    root.addHandler(file_handler)

    for name, level in _LIBRARY_LEVELS.items():
        logging.getLogger(name).setLevel(max(level, console_level) if name == "nio" else level)

    logging.captureWarnings(True)
    return log_file
