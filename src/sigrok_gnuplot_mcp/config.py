"""Runtime configuration (env-resolved constants) and logging setup."""

from __future__ import annotations

import logging
import os

PACKAGE_NAME = "sigrok-gnuplot-mcp"
PACKAGE_VERSION = "0.1.0"
PACKAGE_STRING = f"{PACKAGE_NAME} {PACKAGE_VERSION}"

LOG_LEVEL: str = (os.getenv("SIGROK_GNUPLOT_LOG_LEVEL") or "INFO").strip().upper()
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Highest number of probes a single logic packet may carry.
_MAX_NUM_CHANNELS_RAW = (os.getenv("SIGROK_GNUPLOT_MAX_CHANNELS") or "").strip()
try:
    MAX_NUM_CHANNELS: int = int(_MAX_NUM_CHANNELS_RAW) if _MAX_NUM_CHANNELS_RAW else 64
except ValueError:
    MAX_NUM_CHANNELS = 64
MAX_NUM_CHANNELS = max(1, MAX_NUM_CHANNELS)

DEFAULT_DRIVER: str = (os.getenv("SIGROK_GNUPLOT_DRIVER") or "zeroplus-logic-cube").strip()

# None means a private temp dir that is removed on shutdown.
CAPTURE_DIR: str | None = (os.getenv("SIGROK_GNUPLOT_CAPTURE_DIR") or "").strip() or None

_MAX_ROWS_RAW = (os.getenv("SIGROK_GNUPLOT_MAX_ROWS") or "").strip()
try:
    MAX_ROWS_PER_CALL: int = int(_MAX_ROWS_RAW) if _MAX_ROWS_RAW else 5000
except ValueError:
    MAX_ROWS_PER_CALL = 5000
MAX_ROWS_PER_CALL = max(1, MAX_ROWS_PER_CALL)


def configure_logging() -> None:
    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)


__all__ = [
    "CAPTURE_DIR",
    "DEFAULT_DRIVER",
    "LOG_FORMAT",
    "LOG_LEVEL",
    "MAX_NUM_CHANNELS",
    "MAX_ROWS_PER_CALL",
    "PACKAGE_NAME",
    "PACKAGE_STRING",
    "PACKAGE_VERSION",
    "configure_logging",
]
