"""
Logging configuration for stageflow.

Everything goes to one log file; the console only shows warnings so it does
not fight with the rich progress display.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

LOG_PATH = Path("stageflow_data") / "stageflow.log"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
CONSOLE_FORMAT = "%(levelname)s: %(message)s"


def _level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    if not isinstance(level, int):
        raise ValueError(f"unknown log level: {name}")
    return level


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    console_level: str = "WARNING",
) -> logging.Logger:
    """
    Route all loggers to the run log and stderr.

    Args:
        level: Level for the log file (DEBUG, INFO, WARNING, ERROR)
        log_file: Log file path (default stageflow_data/stageflow.log)
        console_level: Level for stderr

    Returns:
        The ``stageflow`` logger
    """
    log_path = LOG_PATH if log_file is None else Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    file_level = _level(level)
    stderr_level = _level(console_level)
    root.setLevel(min(file_level, stderr_level))

    fh = logging.FileHandler(log_path, encoding="utf-8")
    fh.setLevel(file_level)
    fh.setFormatter(logging.Formatter(FILE_FORMAT))
    root.addHandler(fh)

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(stderr_level)
    ch.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    root.addHandler(ch)

    return logging.getLogger("stageflow")
