"""Logging setup shared by every module of the service."""
from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

logger = logging.getLogger("webtoon_studio")


def setup_logging(level: str | int = "INFO") -> None:
    """Attach a single stream handler to the service logger."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logger.setLevel(level)
    if not any(getattr(handler, "_webtoon_studio", False) for handler in logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._webtoon_studio = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
