#!/usr/bin/env python3
"""
Core Module

Shared infrastructure for the order service.

COMPONENTS:
    - config/: Dataclass configuration loaded from the environment (python-dotenv)
    - logger.py: Process-wide logging setup

USAGE:
    from core.config import get_settings
    from core.logger import setup_service_logger

    config = get_settings()
    logger = setup_service_logger(config.service_name)
"""

__version__ = "1.0.0"
