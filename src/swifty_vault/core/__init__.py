# Core Module - Shared Utilities
#
# - Clock and identifier sources
# - Structured logging configuration

from .clock import Clock, IdFactory, new_id, now_ms
from .log_setup import configure_logging, get_logger

__all__ = [
    "Clock",
    "IdFactory",
    "new_id",
    "now_ms",
    "configure_logging",
    "get_logger",
]
