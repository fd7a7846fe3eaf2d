"""Logging setup for the ownitright client, driven by environment variables."""

import logging
import os
import sys
from typing import Optional, TextIO
from pythonjsonlogger import jsonlogger

ROOT_LOGGER_NAME = "ownitright"


def _env_flag(name: str, default: bool) -> bool:
    return os.environ.get(name, "true" if default else "false").strip().lower() in ("1", "true", "yes")


class LoggingConfig:
    """Logging settings; read once at import, overridable in setup_logging()."""

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "json").lower()
    LOG_SEARCH_TEXT = _env_flag("LOG_SEARCH_TEXT", True)
    LOG_MASK_SENSITIVE = _env_flag("LOG_MASK_SENSITIVE", True)
    LOG_CORRELATION_ID_HEADER = os.environ.get("LOG_CORRELATION_ID_HEADER", "X-Correlation-ID")
    LOG_SLOW_OPERATION_THRESHOLD_MS = int(os.environ.get("LOG_SLOW_OPERATION_THRESHOLD_MS", "1000"))

    # httpx logs every request at INFO; RestClient already logs its own timings
    QUIET_LOGGERS = ("httpx", "httpcore", "asyncio")

    @classmethod
    def build_formatter(cls, fmt: Optional[str] = None) -> logging.Formatter:
        fmt = (fmt or cls.LOG_FORMAT).lower()
        if fmt == "json":
            return jsonlogger.JsonFormatter(
                "%(timestamp)s %(levelname)s %(name)s %(message)s",
                rename_fields={"levelname": "level", "name": "logger"},
                timestamp=True,
            )
        return logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    @classmethod
    def setup_logging(
        cls,
        level: Optional[str] = None,
        fmt: Optional[str] = None,
        stream: Optional[TextIO] = None,
    ) -> logging.Logger:
        """
        Attach one stream handler to the package logger.

        Only the "ownitright" logger is configured so that a host application
        keeps control of the root logger. Calling this again replaces the
        handler instead of stacking a second one.
        """
        level_value = getattr(logging, (level or cls.LOG_LEVEL).upper(), logging.INFO)
        package_logger = logging.getLogger(ROOT_LOGGER_NAME)
        package_logger.setLevel(level_value)

        for handler in list(package_logger.handlers):
            if getattr(handler, "_ownitright_handler", False):
                package_logger.removeHandler(handler)

        handler = logging.StreamHandler(stream or sys.stdout)
        handler.setLevel(level_value)
        handler.setFormatter(cls.build_formatter(fmt))
        handler._ownitright_handler = True
        package_logger.addHandler(handler)

        for name in cls.QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

        return package_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger, nesting names outside the package under "ownitright"."""
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)
