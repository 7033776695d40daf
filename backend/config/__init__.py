"""Configuration helpers for backend defaults."""

from .defaults import (  # noqa: F401
    AUTO_START,
    CFG_DIR_ENV,
    DEFAULT_CFG_DIR,
    DEFAULT_LOG_DIR,
    LOG_DIR_ENV,
    STREAM_INTERVAL,
)

__all__ = [
    "AUTO_START",
    "CFG_DIR_ENV",
    "DEFAULT_CFG_DIR",
    "DEFAULT_LOG_DIR",
    "LOG_DIR_ENV",
    "STREAM_INTERVAL",
]
