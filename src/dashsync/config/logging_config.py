"""Logging configuration."""

import logging
import sys
from typing import Optional

from dashsync.config.settings import Settings, get_settings

# Third-party loggers that are too chatty at INFO
NOISY_LOGGERS = ("sqlalchemy.engine", "httpx", "httpcore")


def resolve_level(name: str) -> int:
    """Map a level name such as "debug" onto its logging constant."""
    level = logging.getLevelName(name.strip().upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: '{name}'")
    return level


def setup_logging(settings: Optional[Settings] = None) -> None:
    """
    Configure client logging.

    The root level comes from settings.log_level. Entries in
    settings.log_levels override single loggers, e.g.
    DASHSYNC_LOG_LEVELS='{"dashsync.services.adaptive_poller": "DEBUG"}'
    traces polling without turning on debug output everywhere.
    """
    settings = settings or get_settings()

    logging.basicConfig(
        level=resolve_level(settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    for name, level in settings.log_levels.items():
        logging.getLogger(name).setLevel(resolve_level(level))
