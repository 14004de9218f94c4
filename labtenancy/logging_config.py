from __future__ import annotations

import logging


def configure_app_logging(level: str = "INFO") -> None:
    """
    Set the level of the ``labtenancy`` package logger.

    Uvicorn already installs handlers; modules log through
    ``logging.getLogger(__name__)`` and inherit this level. Control it with
    ``APP_LOG_LEVEL`` (DEBUG shows context resolution and session binding).
    Tokens and header values other than lab ids are never logged.
    """

    normalized = level.upper()
    logger = logging.getLogger("labtenancy")
    logger.setLevel(normalized)
    logger.propagate = True
