"""
Logging setup for collector runs.

Maps the collector `verbosity` option (0-2) onto logging levels and attaches
a console handler plus an optional per-run log file.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Tuple

LOGGER_NAME = "octseg_collector"

_VERBOSITY_LEVELS = {0: logging.WARNING, 1: logging.INFO, 2: logging.DEBUG}


def verbosity_to_level(verbosity: int) -> int:
    """Logging level for a verbosity of 0 (quiet) to 2 (everything)."""
    return _VERBOSITY_LEVELS[max(0, min(2, int(verbosity)))]


def setup_logging(
    verbosity: int = 1, log_dir: Optional[Path] = None
) -> Tuple[logging.Logger, Optional[Path]]:
    """Configure the package logger with console and optional file handlers.

    Args:
        verbosity: 0 = warnings only, 1 = progress, 2 = debug detail.
        log_dir: If given, a log file collector_{MMDD}_{HHMM}.log is
            written there.

    Returns:
        Tuple of (logger, log_path) where log_path is None without log_dir.
    """
    level = verbosity_to_level(verbosity)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()

    # Console handler
    ch = logging.StreamHandler(sys.stdout)
    ch.setLevel(level)
    ch.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(ch)

    log_path = None
    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%m%d_%H%M")
        log_path = log_dir / f"collector_{timestamp}.log"

        # File handler
        fh = logging.FileHandler(log_path, encoding="utf-8")
        fh.setLevel(level)
        fh.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)-8s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(fh)

    return logger, log_path


__all__ = ["LOGGER_NAME", "setup_logging", "verbosity_to_level"]
