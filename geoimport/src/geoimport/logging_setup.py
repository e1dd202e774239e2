"""Logging for the importer CLI.

Records from the ``geoimport`` logger tree go to one stderr handler. Each
line carries the import run id and stage the record was logged for, or
``-`` when it was logged outside a stage.
"""

from __future__ import annotations

import logging
from typing import IO

LOGGER_NAME = "geoimport"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(run_id)s %(stage)s] %(name)s: %(message)s"


class ImportContextFilter(logging.Filter):
    """Give every record ``run_id`` and ``stage`` so the format never fails."""

    def filter(self, record: logging.LogRecord) -> bool:
        for attr in ("run_id", "stage"):
            if not hasattr(record, attr):
                setattr(record, attr, "-")
        return True


def _level(level_name: str) -> int:
    level = logging.getLevelName(level_name.strip().upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging(level_name: str, stream: IO[str] | None = None) -> logging.Logger:
    """Route ``geoimport`` records to stderr (or ``stream``) at ``level_name``.

    Calling it again replaces the handler rather than stacking another one.
    """

    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    handler = logging.StreamHandler(stream)
    handler.addFilter(ImportContextFilter())
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(_level(level_name))
    logger.propagate = False
    return logger
