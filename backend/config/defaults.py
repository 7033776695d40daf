"""Default values for the touch scale host."""

from pathlib import Path

# Directory holding config.json; overridden with TOUCHSCALE_CFG_DIR.
CFG_DIR_ENV = "TOUCHSCALE_CFG_DIR"
DEFAULT_CFG_DIR = Path.home() / ".touchscale"

# File logging is skipped when this directory cannot be created.
LOG_DIR_ENV = "TOUCHSCALE_LOG_DIR"
DEFAULT_LOG_DIR = Path("/var/log/touchscale")

# Seconds between readings pushed on /ws/scale.
STREAM_INTERVAL = 0.1

# Start the measurement session together with the application.
AUTO_START = False

__all__ = [
    "AUTO_START",
    "CFG_DIR_ENV",
    "DEFAULT_CFG_DIR",
    "DEFAULT_LOG_DIR",
    "LOG_DIR_ENV",
    "STREAM_INTERVAL",
]
