"""
logging_config.py
=================
Logging setup for batch calibration runs.

Library modules only do ``log = logging.getLogger(__name__)``; handlers are
installed once by the entry point through ``setup_logging``. The console gets
short human-readable lines, and an optional per-run ``run.jsonl`` file gets
one JSON object per record including the structured extras passed with
``extra=`` (individual id, stage, counts).
"""

from __future__ import annotations

import json
import logging
import os
import time
import uuid
from typing import List, Optional

STRUCTURED_KEYS = (
    "individual_id",
    "stage",
    "n_input",
    "counts",
    "threshold",
    "timing_seconds",
)

# Bound to every record by RunIdFilter.
_run_id: Optional[str] = None
_installed: List[logging.Handler] = []
_file_handler: Optional[logging.Handler] = None


def get_run_id() -> str:
    global _run_id
    if _run_id is None:
        _run_id = uuid.uuid4().hex[:8]
    return _run_id


class RunIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = get_run_id()
        return True


class JsonFormatter(logging.Formatter):
    """Format records as JSON Lines."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S.")
            + f"{int(record.msecs):03d}",
            "level": record.levelname,
            "logger": record.name,
            "function": record.funcName,
            "line": record.lineno,
            "run_id": getattr(record, "run_id", None),
            "message": record.getMessage(),
        }
        for key in STRUCTURED_KEYS:
            if hasattr(record, key):
                entry[key] = getattr(record, key)
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s [%(levelname)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


def setup_logging(
    log_dir: Optional[str] = None,
    console_level: Optional[int] = None,
    file_level: int = logging.DEBUG,
) -> None:
    """Configure the root logger.

    Parameters
    ----------
    log_dir : str, optional
        When given, records are also written to ``{log_dir}/run.jsonl``.
    console_level : int, optional
        Console level. Defaults to the ``LOG_LEVEL`` environment variable,
        or INFO.
    file_level : int
        Level of the JSON Lines file.

    Repeated calls do not duplicate handlers; a file handler is added the
    first time a ``log_dir`` is supplied.
    """
    global _file_handler

    if console_level is None:
        env_level = os.environ.get("LOG_LEVEL", "INFO").upper()
        console_level = getattr(logging, env_level, logging.INFO)

    root = logging.getLogger()
    if not _installed:
        root.setLevel(logging.DEBUG)
        console = logging.StreamHandler()
        console.setLevel(console_level)
        console.setFormatter(ConsoleFormatter())
        console.addFilter(RunIdFilter())
        root.addHandler(console)
        _installed.append(console)

    if log_dir and _file_handler is None:
        os.makedirs(log_dir, exist_ok=True)
        fh = logging.FileHandler(os.path.join(log_dir, "run.jsonl"), encoding="utf-8")
        fh.setLevel(file_level)
        fh.setFormatter(JsonFormatter())
        fh.addFilter(RunIdFilter())
        root.addHandler(fh)
        _installed.append(fh)
        _file_handler = fh


def reset_logging() -> None:
    """Remove the handlers installed by ``setup_logging`` (test isolation)."""
    global _file_handler, _run_id

    root = logging.getLogger()
    for handler in _installed:
        root.removeHandler(handler)
        handler.close()
    _installed.clear()
    _file_handler = None
    _run_id = None


class StepTimer:
    """Context manager measuring wall time of a pipeline step."""

    def __enter__(self) -> "StepTimer":
        self.start = time.perf_counter()
        self.elapsed = 0.0
        return self

    def __exit__(self, *args) -> None:
        self.elapsed = time.perf_counter() - self.start
