"""Logging configuration with Betterstack support.

Every module logs through the ``mail_archiver`` logger exported here. Records go
to stdout, a rotating file under ``LOGS_DIR`` and, when a source token is set,
Better Stack.
"""
import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional
from logtail import LogtailHandler

from mail_archiver import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# HTTP and auth libraries log every request at DEBUG/INFO
NOISY_LOGGERS = ("urllib3", "requests", "google.auth")

# Handlers added by setup_logging, replaced on the next call
_installed = []


def _file_handler(formatter: logging.Formatter) -> logging.Handler:
    handler = RotatingFileHandler(
        settings.LOGS_DIR / settings.LOG_FILE,
        maxBytes=settings.LOG_MAX_BYTES,
        backupCount=settings.LOG_BACKUP_COUNT,
    )
    handler.setLevel(logging.INFO)
    handler.setFormatter(formatter)
    return handler


def _betterstack_handler(formatter: logging.Formatter) -> Optional[logging.Handler]:
    """Better Stack handler, or None when no source token is configured."""
    if not settings.BETTERSTACK_SOURCE_TOKEN:
        return None
    kwargs = {"source_token": settings.BETTERSTACK_SOURCE_TOKEN}
    if settings.BETTERSTACK_INGEST_HOST:
        kwargs["host"] = settings.BETTERSTACK_INGEST_HOST
    handler = LogtailHandler(**kwargs)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(formatter)
    return handler


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """Configure the root logger and return the application logger.

    Safe to call again: handlers from the previous call are replaced, not
    duplicated. Handlers added by anything else are left in place.
    """
    level = getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT)

    root = logging.getLogger()
    root.setLevel(level)
    while _installed:
        handler = _installed.pop()
        root.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(formatter)
    _installed.extend([console, _file_handler(formatter)])
    for handler in _installed:
        root.addHandler(handler)

    try:
        remote = _betterstack_handler(formatter)
    except Exception as e:
        root.warning(f"Failed to initialize BetterStack logging: {e}")
    else:
        if remote is not None:
            _installed.append(remote)
            root.addHandler(remote)
            root.info(f"BetterStack logging enabled (host: {settings.BETTERSTACK_INGEST_HOST or 'default'})")

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logging.getLogger("mail_archiver")


logger = setup_logging()
