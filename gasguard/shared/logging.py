"""Logging configuration for gasguard nodes."""

import logging
from typing import List, Optional

DEFAULT_FORMAT = "%(asctime)s - {node} - %(name)s - %(levelname)s - %(message)s"

# paho and kasa are chatty at DEBUG
DEFAULT_QUIET = ["paho", "asyncio", "kasa", "aiohttp"]


def setup_logging(
    level: str = "INFO",
    node_name: Optional[str] = None,
    log_file: Optional[str] = None,
    quiet_loggers: Optional[List[str]] = None,
) -> None:
    """Configure root logging for one node process.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        node_name: Tag put on every line, so logs of both nodes can be
            merged. Defaults to 'gasguard'.
        log_file: Write to this file instead of stderr. Used when the
            terminal dashboard owns the screen.
        quiet_loggers: Extra logger names to hold at WARNING.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    handler = logging.FileHandler(log_file) if log_file else logging.StreamHandler()

    logging.basicConfig(
        level=log_level,
        format=DEFAULT_FORMAT.format(node=node_name or "gasguard"),
        handlers=[handler],
        force=True,
    )

    for logger_name in DEFAULT_QUIET + (quiet_loggers or []):
        logging.getLogger(logger_name).setLevel(logging.WARNING)
