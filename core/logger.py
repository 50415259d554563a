"""
Service Logger Setup

Configures the root logger once per process from LoggingConfig and returns
a named logger for the calling service.

Usage:
    from core.logger import setup_service_logger
    logger = setup_service_logger("order_service")
"""

import logging
import sys
from typing import Optional

from core.config import get_settings

_configured = False


def setup_service_logger(service_name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Configure logging handlers and return the service logger

    Args:
        service_name: Logger name, usually the microservice name
        level: Log level override (defaults to LOG_LEVEL)

    Returns:
        Configured logger
    """
    global _configured

    log_config = get_settings().logging
    log_level = getattr(logging, (level or log_config.log_level).upper(), logging.INFO)

    if not _configured:
        root = logging.getLogger()
        root.setLevel(log_level)
        formatter = logging.Formatter(log_config.log_format)

        if log_config.enable_console:
            console = logging.StreamHandler(sys.stdout)
            console.setFormatter(formatter)
            root.addHandler(console)

        if log_config.log_file:
            file_handler = logging.FileHandler(log_config.log_file, encoding="utf-8")
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)

        # httpx logs every request at INFO
        logging.getLogger("httpx").setLevel(logging.WARNING)
        _configured = True

    logger = logging.getLogger(service_name)
    logger.setLevel(log_level)
    return logger
