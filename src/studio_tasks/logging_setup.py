# src/studio_tasks/logging_setup.py

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

APP_LOGGER = "studio_tasks"

# Minimum console level per logger prefix; the poller logs every cycle.
CONSOLE_THRESHOLDS: dict[str, int] = {
    "studio_tasks.tasks.task_scheduler": logging.WARNING,
    "studio_tasks": logging.NOTSET,
}
OTHER_CONSOLE_THRESHOLD = logging.ERROR

QUIET_LIBRARIES = ("httpx", "httpcore")


class _ConsoleNoiseFilter(logging.Filter):
    """Console-only filter: tracker logs pass, everything else (py.warnings included) only at ERROR+."""

    def __init__(
        self,
        thresholds: dict[str, int] | None = None,
        default: int = OTHER_CONSOLE_THRESHOLD,
    ) -> None:
        super().__init__()
        # Longest prefix first, so specific loggers win over the package root.
        items = (thresholds or CONSOLE_THRESHOLDS).items()
        self._thresholds = sorted(items, key=lambda kv: len(kv[0]), reverse=True)
        self._default = default

    def _threshold(self, name: str) -> int:
        for prefix, level in self._thresholds:
            if name == prefix or name.startswith(prefix + "."):
                return level
        return self._default

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= self._threshold(record.name)


def setup_logging(
    *,
    log_dir: str | Path = ".local/studio_tasks",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    max_file_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 3,
) -> Path:
    """
    Filtered stderr handler for the console plus a rotating DEBUG file
    under log_dir. Returns the log file path.
    """
    log_file = Path(log_dir) / f"{APP_LOGGER}.log"
    log_file.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.addFilter(_ConsoleNoiseFilter())

    file_handler = RotatingFileHandler(
        log_file, maxBytes=max_file_bytes, backupCount=backup_count, encoding="utf-8"
    )
    file_handler.setLevel(file_level)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        root.removeHandler(handler)
    for handler in (console, file_handler):
        handler.setFormatter(formatter)
        root.addHandler(handler)

    logging.captureWarnings(True)
    for name in QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)

    return log_file
