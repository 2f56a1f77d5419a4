from __future__ import annotations

import logging

from docguard.core.config import get_settings


_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging() -> None:
    # Configure the root logger once; uvicorn keeps its own handlers.
    settings = get_settings()
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=_LOG_FORMAT)
    else:
        root.setLevel(level)
    # SQLAlchemy engine echo is noisy at INFO.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
