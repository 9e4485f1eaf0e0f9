"""
Category-aware logging for streamalert

Every logger belongs to one category (twitch, kick, webhook, notify, system).
LOG_CATEGORIES narrows output to a comma-separated subset; LOG_LEVEL sets
the threshold.

Usage:
    from streamalert.utils.logging import get_logger

    logger = get_logger(__name__, category='twitch')
    logger.info('[Twitch] App Access Token fetched')
"""

import logging
from typing import FrozenSet, Optional

from streamalert.config import settings

CATEGORIES = frozenset({"twitch", "kick", "webhook", "notify", "system"})

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def parse_categories(value: Optional[str]) -> Optional[FrozenSet[str]]:
    """None means every category is shown."""
    if not value:
        return None
    return frozenset(cat.strip().lower() for cat in value.split(",") if cat.strip())


_allowed_categories = parse_categories(settings.log_categories)


class CategoryFilter(logging.Filter):
    """Drop records whose category is not in LOG_CATEGORIES."""

    def __init__(self, category: Optional[str] = None):
        super().__init__()
        self.category = category.lower() if category else "system"

    def filter(self, record: logging.LogRecord) -> bool:
        record.category = self.category
        if _allowed_categories is None:
            return True
        return self.category in _allowed_categories


class HealthCheckFilter(logging.Filter):
    """Keep liveness probes out of the uvicorn access log."""

    def filter(self, record: logging.LogRecord) -> bool:
        return "/health" not in record.getMessage()


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=LOG_LEVELS.get((level or settings.log_level).upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    access_logger = logging.getLogger("uvicorn.access")
    if not any(isinstance(f, HealthCheckFilter) for f in access_logger.filters):
        access_logger.addFilter(HealthCheckFilter())

    if _allowed_categories is not None:
        unknown = sorted(_allowed_categories - CATEGORIES)
        if unknown:
            logging.getLogger(__name__).warning(
                "Unknown LOG_CATEGORIES ignored: %s", ", ".join(unknown)
            )


def get_logger(name: str, category: Optional[str] = None) -> logging.Logger:
    """
    Get a logger tagged with a category.

    Args:
        name: Logger name (typically __name__)
        category: One of CATEGORIES; defaults to 'system'
    """
    logger = logging.getLogger(name)
    logger.setLevel(LOG_LEVELS.get(settings.log_level.upper(), logging.INFO))

    logger.filters = [f for f in logger.filters if not isinstance(f, CategoryFilter)]
    logger.addFilter(CategoryFilter(category))
    return logger
