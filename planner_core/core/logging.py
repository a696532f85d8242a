import logging

from planner_core.core.config import settings


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(f"planner_core.{name}")
    if not logger.handlers:
        handler = logging.StreamHandler()
        fmt = logging.Formatter("[%(levelname)s] %(name)s: %(message)s")
        handler.setFormatter(fmt)
        logger.addHandler(handler)
        logger.setLevel(logging.DEBUG if settings.DEBUG_PLANNER else logging.INFO)
    return logger


"""
Logging setup and it configures:
- Log format
- Log level (DEBUG_PLANNER switches to debug)
- Output destination

The main purpose:
Standardized engine logging.
"""
