"""Root logger configuration for the CLI."""
from __future__ import annotations

import logging

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger; unknown level names fall back to INFO."""
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        numeric = logging.INFO

    logging.basicConfig(format=_LOG_FORMAT, datefmt=_DATE_FORMAT, force=True)
    logging.getLogger().setLevel(numeric)

    # HTTP client chatter drowns out pass logging at DEBUG.
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
