"""Logging for compact-mirror — stderr always, file handler on request."""

from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path

LOGGER_NAME = "compact_mirror"
LOG_FORMAT = "%(asctime)s [%(process)d] %(levelname)s %(name)s: %(message)s"

logger = logging.getLogger(LOGGER_NAME)

_stderr_handler: logging.Handler | None = None
_file_handler: logging.Handler | None = None


def configure_logging(log_dir: Path | None = None, stderr_level: int = logging.WARNING) -> logging.Logger:
    """Attach handlers to the ``compact_mirror`` logger (idempotent).

    Args:
        log_dir: If given, also log DEBUG+ to a rotating ``mirror.log`` there.
        stderr_level: Threshold for the stderr handler.

    Returns:
        The package logger.
    """
    global _stderr_handler, _file_handler
    logger.setLevel(logging.DEBUG)

    if _stderr_handler is None:
        _stderr_handler = logging.StreamHandler(sys.stderr)
        _stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%H:%M:%S"))
        logger.addHandler(_stderr_handler)
    _stderr_handler.setLevel(stderr_level)

    if log_dir is not None and _file_handler is None:
        log_dir.mkdir(parents=True, exist_ok=True)
        log_path = log_dir / "mirror.log"
        fh = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=2_000_000,
            backupCount=3,
            encoding="utf-8",
        )
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(fh)
        _file_handler = fh
        logger.info("compact-mirror log attached to %s", log_path)

    return logger


def reset_logging() -> None:
    """Detach handlers added by configure_logging()."""
    global _stderr_handler, _file_handler
    for h in (_stderr_handler, _file_handler):
        if h is not None:
            logger.removeHandler(h)
            h.close()
    _stderr_handler = None
    _file_handler = None
