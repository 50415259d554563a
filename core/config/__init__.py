#!/usr/bin/env python3
"""Modular configuration system for the order service

Configuration hierarchy:
- order_config: Service settings and flat-file storage
- service_config: External providers (Razorpay, Shiprocket, Google Sheets)
- logging_config: Logging configuration
"""
import os
from dotenv import load_dotenv
from .logging_config import LoggingConfig
from .service_config import RazorpayConfig, ShiprocketConfig, NotificationConfig
from .order_config import OrderServiceConfig, StorageConfig

# Load environment file based on ENV
env = os.getenv("ENV") or os.getenv("ENVIRONMENT", "development")
env_files = {
    "development": "deployment/environments/dev.env",
    "dev": "deployment/environments/dev.env",
    "testing": "deployment/environments/test.env",
    "test": "deployment/environments/test.env",
    "staging": "deployment/environments/staging.env",
    "production": "deployment/environments/production.env",
}
env_file = env_files.get(env, "deployment/environments/dev.env")
load_dotenv(env_file, override=False)

# Create global settings instance
settings = OrderServiceConfig.from_env()

def get_settings() -> OrderServiceConfig:
    """Get global settings instance"""
    return settings

def reload_settings() -> OrderServiceConfig:
    """Reload settings from environment"""
    global settings
    settings = OrderServiceConfig.from_env()
    return settings

__all__ = [
    # Main config
    'OrderServiceConfig',
    'get_settings',
    'reload_settings',
    'settings',
    # Sub-configs
    'LoggingConfig',
    'StorageConfig',
    'RazorpayConfig',
    'ShiprocketConfig',
    'NotificationConfig',
]
