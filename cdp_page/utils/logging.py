"""
Logging utility module for CDP Page.
Contains functions for configuring logging.
"""
import logging
import os
import sys
from typing import Optional

PROTOCOL_LOGGER = "cdp_page.core.connection"


def configure_logging(
    level: int = logging.INFO,
    format_string: Optional[str] = None,
    log_file: Optional[str] = None,
    trace_protocol: bool = False,
) -> None:
    """
    Configure logging for CDP Page.

    Every protocol message is logged at debug level by the connection. That
    traffic stays hidden under ``level=DEBUG`` unless ``trace_protocol`` is set.

    Args:
        level: Logging level
        format_string: Log format string
        log_file: Log file path, parent directories are created
        trace_protocol: Log every command and event sent over the socket
    """
    if format_string is None:
        format_string = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    formatter = logging.Formatter(format_string)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    logging.getLogger(PROTOCOL_LOGGER).setLevel(logging.DEBUG if trace_protocol else max(level, logging.INFO))
    logging.getLogger("websockets").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the cdp_page namespace."""
    if not name.startswith("cdp_page"):
        name = f"cdp_page.{name}"
    return logging.getLogger(name)
