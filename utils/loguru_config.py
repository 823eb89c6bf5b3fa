"""
Module Name: loguru_config.py
Description:
    Loguru backend for application logging. Standard-library records from
    every module logger are forwarded into Loguru, which writes a colored
    console sink and a rotating file sink (plain text or JSON lines).

Location:
    /utils/loguru_config.py

"""

import logging
import sys
from pathlib import Path
from typing import Iterable, Optional, Union

from loguru import logger

ROOT_LABEL = "Seedwarden"

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> "
    "| <level>{level: <8}</level> "
    "| <cyan>{extra[logger_name]}</cyan> - "
    "<level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} - {extra[logger_name]} - {level} - {message}"

# Third-party loggers that only add noise below WARNING
QUIET_LOGGERS = ("urllib3", "urllib3.connectionpool", "charset_normalizer")


def logger_label(raw_name: Union[str, int, None]) -> str:
    """Dotted label for a stdlib logger name ("download_clients.qbittorrent" -> "Download.Clients.Qbittorrent")."""
    if raw_name is None or raw_name == "" or raw_name == "root":
        return ROOT_LABEL
    segments = str(raw_name).replace("/", ".").replace("_", ".").split(".")
    return ".".join(segment[:1].upper() + segment[1:] for segment in segments if segment)


class InterceptHandler(logging.Handler):
    """Forward standard logging records to Loguru, keeping the caller's frame."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: Union[str, int] = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.bind(logger_name=logger_label(record.name)).opt(
            depth=depth, exception=record.exc_info
        ).log(level, record.getMessage())


def _level_name(level: Union[str, int]) -> Union[str, int]:
    if isinstance(level, int):
        name = logging.getLevelName(level)
        return name if not name.startswith("Level ") else level
    return str(level or "INFO").upper()


def setup_loguru(
    log_level: Union[str, int] = "INFO",
    log_file: str = "seedwarden.log",
    logger_name: str = ROOT_LABEL,
    log_dir: Optional[str] = None,
    serialize: bool = False,
    quiet_loggers: Iterable[str] = QUIET_LOGGERS,
):
    """Replace all Loguru sinks and route the stdlib logging tree into them."""
    level = _level_name(log_level)
    directory = Path(log_dir) if log_dir else Path(__file__).resolve().parent.parent / "logs"
    directory.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.configure(extra={"logger_name": logger_label(logger_name)})

    logger.add(
        sys.stderr,
        level=level,
        format=CONSOLE_FORMAT,
        colorize=sys.stderr.isatty(),
        backtrace=False,
        diagnose=False,
    )
    logger.add(
        directory / log_file,
        level=level,
        format=FILE_FORMAT,
        serialize=serialize,
        rotation="10 MB",
        retention=5,
        encoding="utf-8",
        enqueue=True,
        backtrace=False,
        diagnose=False,
    )

    logging.basicConfig(handlers=[InterceptHandler()], level=logging.NOTSET, force=True)
    for name in quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger
