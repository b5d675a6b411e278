# Structured Logging
#
# Configures structlog on top of the standard logging module. Vault modules
# log through structlog.get_logger(__name__) with event names and key/value
# context (vault ids, counts, paths). Keys and record values are never logged.

import logging
import sys
from pathlib import Path
from typing import List, Optional, Union

import structlog

from ..config import get_settings

_HANDLER_NAME = "swifty_vault"


def _processors(json_output: bool) -> List:
    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    return [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        renderer,
    ]


def configure_logging(
    level: Optional[str] = None,
    json_output: Optional[bool] = None,
    log_file: Optional[Union[str, Path]] = None,
) -> None:
    """
    Configure structlog and the package logger.

    Args:
        level: Minimum level name (default: settings.log_level)
        json_output: JSON lines instead of console output (default: settings.log_json)
        log_file: Optional file to append records to, in addition to stderr

    Calling this again replaces the handlers installed by a previous call.
    """
    settings = get_settings()
    level = (level or settings.log_level).upper()
    if json_output is None:
        json_output = settings.log_json

    structlog.configure(
        processors=_processors(json_output),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    package_logger = logging.getLogger("swifty_vault")
    package_logger.setLevel(level)
    for handler in list(package_logger.handlers):
        if handler.get_name() == _HANDLER_NAME:
            package_logger.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter("%(message)s")  # structlog handles formatting

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.set_name(_HANDLER_NAME)
    stream_handler.setFormatter(formatter)
    package_logger.addHandler(stream_handler)

    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
        file_handler.set_name(_HANDLER_NAME)
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to ``name``."""
    return structlog.get_logger(name)
