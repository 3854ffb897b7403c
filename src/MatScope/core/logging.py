"""Logging setup for the engine."""

import logging
import logging.handlers
import os
import threading

logger = logging.getLogger("matscope")

# 10 MB max per log file, keep 3 rotated backups
_LOG_MAX_BYTES = 10 * 1024 * 1024
_LOG_BACKUP_COUNT = 3
_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s [T%(thread)d]: %(message)s"
_setup_lock = threading.Lock()


def setup_logging(level: str = "INFO", log_file: str = None, force: bool = False):
    """Configure logging without clobbering host-app handlers by default."""
    with _setup_lock:
        _setup_logging_impl(level, log_file, force)


def _setup_logging_impl(level: str, log_file: str, force: bool):
    """Internal implementation of setup_logging (called under _setup_lock)."""
    handlers = [logging.StreamHandler()]
    if log_file:
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            log_file, maxBytes=_LOG_MAX_BYTES, backupCount=_LOG_BACKUP_COUNT,
            encoding="utf-8",
        ))
    numeric_level = getattr(logging, str(level).upper(), None)
    if not isinstance(numeric_level, int):
        logger.warning("Invalid log level '%s', defaulting to INFO", level)
        numeric_level = logging.INFO

    root = logging.getLogger()
    if force or not root.handlers:
        logger.debug("Initializing logging (force=%s, handlers=%d)", force, len(handlers))
        logging.basicConfig(
            level=numeric_level,
            format=_LOG_FORMAT,
            handlers=handlers,
            force=force,
        )
        return

    # Embedded mode: only touch the matscope logger hierarchy so unrelated
    # libraries sharing the root logger keep their configuration.
    engine_logger = logging.getLogger("matscope")
    engine_logger.setLevel(numeric_level)
    if log_file:
        existing_files = {
            getattr(h, "baseFilename", None)
            for h in engine_logger.handlers
            if isinstance(h, logging.FileHandler)
        }
        file_handler = handlers[1]
        if getattr(file_handler, "baseFilename", None) not in existing_files:
            logger.info("Adding file handler: %s", file_handler.baseFilename)
            file_handler.setFormatter(logging.Formatter(_LOG_FORMAT))
            engine_logger.addHandler(file_handler)
        else:
            file_handler.close()
