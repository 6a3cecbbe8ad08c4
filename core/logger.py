"""
Service Logger Setup

    from core.logger import setup_service_logger
    logger = setup_service_logger("tracking_service")
"""

import logging
import sys
from typing import Optional

from .config import LoggingConfig

_configured = set()


def setup_service_logger(service_name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Create (once) the root logger of a service.

    Handlers follow LoggingConfig: console by default, plus a file handler
    when LOG_FILE is set. Module loggers created with
    logging.getLogger(__name__) propagate into the same handlers through the
    root logger.
    """
    config = LoggingConfig.from_env()
    log_level = (level or config.log_level or "INFO").upper()
    logger = logging.getLogger(service_name)

    if service_name in _configured:
        logger.setLevel(log_level)
        return logger

    formatter = logging.Formatter(config.log_format)
    root = logging.getLogger()
    root.setLevel(log_level)

    if config.enable_console and not root.handlers:
        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(formatter)
        root.addHandler(console)

    if config.log_file:
        file_handler = logging.FileHandler(config.log_file)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    logger.setLevel(log_level)
    _configured.add(service_name)
    return logger
