"""
Logging configuration
"""

import logging
import sys
from typing import Optional

from core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

# Third-party loggers that are chatty below WARNING
QUIET_LOGGERS = (
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "httpx",
    "httpcore",
    "google.auth",
    "apscheduler",
)


def setup_logging(level: Optional[str] = None):
    """
    Configure application logging.

    ``level`` overrides Settings.LOG_LEVEL (e.g. "DEBUG" from a CLI flag).
    Provider, orchestrator and registry lines carry their own
    ``[provider_id]`` / ``[Orchestrator]`` / ``[Registry]`` prefixes.
    """
    level_name = (level or settings.LOG_LEVEL).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    # Configure root logger
    logging.basicConfig(
        level=log_level,
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured at {level_name} level")
