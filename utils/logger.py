import os
import logging
from logging.handlers import RotatingFileHandler


_LOGGER_INITIALIZED = False
_ROOT_NAME = "Seedwarden"
_LINE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
_MAX_LOG_BYTES = 10 * 1024 * 1024
_LOG_BACKUPS = 5


def _coerce_level(level):
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logger(name=_ROOT_NAME, log_file="seedwarden.log", level=logging.INFO, backend="logging", log_dir=None, serialize=False):
    """Set up application logging (idempotent).

    ``backend="logging"`` installs a rotating file handler and a console
    handler on the root logger; ``backend="loguru"`` routes every stdlib
    record into Loguru sinks instead (``serialize`` writes the file sink as
    JSON lines).
    """
    global _LOGGER_INITIALIZED

    level = _coerce_level(level)
    parent_logger = logging.getLogger(name)

    if backend == "loguru":
        from .loguru_config import setup_loguru

        setup_loguru(log_level=level, log_file=log_file, logger_name=name, log_dir=log_dir, serialize=serialize)
        parent_logger.setLevel(level)
        _LOGGER_INITIALIZED = True
        return parent_logger

    root_logger = logging.getLogger()

    # Second call only changes the level
    if _LOGGER_INITIALIZED and root_logger.handlers:
        for target in (root_logger, parent_logger):
            target.setLevel(level)
        return parent_logger

    log_dir = log_dir or os.path.join(os.path.dirname(__file__), '..', 'logs')
    os.makedirs(log_dir, exist_ok=True)
    log_path = os.path.join(log_dir, log_file)

    formatter = logging.Formatter(_LINE_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')
    handlers = (
        RotatingFileHandler(log_path, maxBytes=_MAX_LOG_BYTES, backupCount=_LOG_BACKUPS, encoding='utf-8'),
        logging.StreamHandler(),
    )

    root_logger.handlers.clear()
    root_logger.setLevel(level)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)
    parent_logger.setLevel(level)

    # urllib3 logs every connection at DEBUG
    logging.getLogger("urllib3").setLevel(max(level, logging.INFO))

    _LOGGER_INITIALIZED = True
    parent_logger.debug("Logging to %s", log_path)

    return parent_logger


def get_module_logger(module_name: str):
    """Get a logger for a specific module.

    Records propagate to whatever ``setup_logger`` installed, so modules can
    create loggers at import time before logging is configured.
    """
    module_logger = logging.getLogger(module_name)
    module_logger.propagate = True
    return module_logger


def get_logger(name=_ROOT_NAME):
    """Get an existing logger instance."""
    return logging.getLogger(name)
