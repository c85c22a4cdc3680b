# attendance_core/core/logging.py
import logging

from attendance_core.core.config import Settings, get_settings

LOGGER_NAME = "attendance_core"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(settings: Settings | None = None) -> logging.Logger:
    """
    Attach a stream handler to the package logger and apply LOG_LEVEL.

    Safe to call more than once; the handler is only installed the first time.
    Embedding applications that configure logging themselves can skip this.
    """
    settings = settings or get_settings()
    logger = logging.getLogger(LOGGER_NAME)

    if not any(getattr(h, "_attendance_core", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._attendance_core = True  # type: ignore[attr-defined]
        logger.addHandler(handler)

    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    logger.setLevel(level if isinstance(level, int) else logging.INFO)
    return logger
