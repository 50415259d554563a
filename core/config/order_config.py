#!/usr/bin/env python3
"""Order service main configuration

Combines all sub-configs into the settings object used by the order service.
"""
import os
from dataclasses import dataclass, field

from .logging_config import LoggingConfig
from .service_config import RazorpayConfig, ShiprocketConfig, NotificationConfig


def _bool(val: str) -> bool:
    return val.lower() == "true"

def _int(val: str, default: int) -> int:
    try:
        return int(val) if val else default
    except ValueError:
        return default


@dataclass
class StorageConfig:
    """Flat-file storage settings"""
    data_dir: str = "data"
    # Entries per activity log file before it is rotated into an archive
    activity_log_max_entries: int = 5000

    @classmethod
    def from_env(cls) -> 'StorageConfig':
        return cls(
            data_dir=os.getenv("DATA_DIR", "data"),
            activity_log_max_entries=_int(os.getenv("ACTIVITY_LOG_MAX_ENTRIES", "5000"), 5000),
        )


@dataclass
class OrderServiceConfig:
    """Main order service configuration with all sub-configs"""

    # Environment
    environment: str = "development"
    debug: bool = False

    # Service settings
    service_name: str = "order_service"
    service_host: str = "0.0.0.0"
    service_port: int = 3000

    # Sub-configurations
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    razorpay: RazorpayConfig = field(default_factory=RazorpayConfig)
    shiprocket: ShiprocketConfig = field(default_factory=ShiprocketConfig)
    notification: NotificationConfig = field(default_factory=NotificationConfig)

    @classmethod
    def from_env(cls) -> 'OrderServiceConfig':
        """Load complete configuration from environment"""
        env = os.getenv("ENV") or os.getenv("ENVIRONMENT", "development")
        return cls(
            # Environment
            environment=env,
            debug=_bool(os.getenv("DEBUG", "true" if env == "development" else "false")),

            # Service settings
            service_name=os.getenv("SERVICE_NAME", "order_service"),
            service_host=os.getenv("HOST", "0.0.0.0"),
            service_port=_int(os.getenv("PORT", "3000"), 3000),

            # Load sub-configs
            logging=LoggingConfig.from_env(),
            storage=StorageConfig.from_env(),
            razorpay=RazorpayConfig.from_env(),
            shiprocket=ShiprocketConfig.from_env(),
            notification=NotificationConfig.from_env(),
        )
