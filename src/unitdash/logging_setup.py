"""Logging bootstrap for the dashboard.

The TUI owns the terminal, so nothing is written to stderr while it runs:
records go to a rotating file and to an in-memory ring shown by the logger
pane.
"""

from __future__ import annotations

import logging
import os
from collections import deque
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path

from platformdirs import user_log_dir


APP_NAME = "unitdash"
RING_CAPACITY = 200
_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
_DATEFMT = "%H:%M:%S"


class RingHandler(logging.Handler):
    """Keeps the last N formatted records for display inside the dashboard."""

    def __init__(self, capacity: int = RING_CAPACITY) -> None:
        super().__init__()
        self.records: deque[str] = deque(maxlen=capacity)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.records.append(self.format(record))
        except Exception:
            self.handleError(record)

    def lines(self) -> list[str]:
        return list(self.records)


@dataclass(frozen=True)
class LoggingRuntime:
    level_name: str
    level: int
    file_path: str
    ring: RingHandler


_RUNTIME: LoggingRuntime | None = None


def _parse_level(raw: str) -> tuple[str, int]:
    normalized = str(raw or "INFO").strip().upper()
    level = getattr(logging, normalized, logging.INFO)
    if not isinstance(level, int):
        level = logging.INFO
    return logging.getLevelName(level), level


def _default_log_path() -> str:
    log_dir = Path(user_log_dir(APP_NAME, appauthor=False))
    return str(log_dir / f"{APP_NAME}.log")


def configure() -> LoggingRuntime:
    """Configure the unitdash logger hierarchy. Idempotent."""
    global _RUNTIME
    if _RUNTIME is not None:
        return _RUNTIME

    level_name, level = _parse_level(os.environ.get("UNITDASH_LOG_LEVEL", "INFO"))
    file_path = os.environ.get("UNITDASH_LOG_FILE") or _default_log_path()
    Path(file_path).parent.mkdir(parents=True, exist_ok=True)

    file_handler = RotatingFileHandler(file_path, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8")
    file_handler.setFormatter(logging.Formatter(_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S"))
    ring = RingHandler()
    ring.setFormatter(logging.Formatter("%(asctime)s %(levelname)-7s %(message)s", datefmt=_DATEFMT))

    logger = logging.getLogger(APP_NAME)
    logger.setLevel(level)
    logger.propagate = False
    logger.handlers.clear()
    logger.addHandler(file_handler)
    logger.addHandler(ring)

    logging.captureWarnings(True)

    _RUNTIME = LoggingRuntime(level_name=level_name, level=level, file_path=file_path, ring=ring)
    return _RUNTIME


def get_runtime() -> LoggingRuntime | None:
    return _RUNTIME


def recent_lines() -> list[str]:
    """Lines for the logger pane; empty until configure() has run."""
    if _RUNTIME is None:
        return []
    return _RUNTIME.ring.lines()
