"""
Order Service Factory

Factory functions for creating service instances with real dependencies.
This is the ONLY place that imports I/O-dependent modules.

Usage:
    from .factory import create_order_service
    service, tracking = create_order_service(config)
"""
from typing import Optional, Tuple

from core.config import OrderServiceConfig, get_settings

from .order_service import OrderService
from .tracking_service import TrackingService


def create_order_service(
    config: Optional[OrderServiceConfig] = None,
    payment_gateway=None,
    carrier=None,
    notifier=None,
) -> Tuple[OrderService, TrackingService]:
    """
    Create OrderService and TrackingService with real dependencies.

    This function imports the real repositories and provider clients (which
    have I/O dependencies). Use this in production, NOT in tests.

    Args:
        config: Service configuration (defaults to global settings)
        payment_gateway: Payment gateway client override
        carrier: Shipping carrier client override
        notifier: Spreadsheet notifier override

    Returns:
        Configured (OrderService, TrackingService) sharing one set of stores
    """
    # Import real repositories and clients here (not at module level)
    from .order_repository import OrderRepository
    from .activity_repository import ActivityRepository
    from .clients import RazorpayClient, ShiprocketClient, SheetsClient

    config = config or get_settings()

    repository = OrderRepository(data_dir=config.storage.data_dir)
    activity = ActivityRepository(
        data_dir=config.storage.data_dir,
        max_entries=config.storage.activity_log_max_entries,
    )

    service = OrderService(
        repository=repository,
        activity=activity,
        payment_gateway=payment_gateway or RazorpayClient(config.razorpay),
        carrier=carrier or ShiprocketClient(config.shiprocket),
        notifier=notifier or SheetsClient(config.notification),
        default_pickup_pincode=config.shiprocket.pickup_pincode,
    )
    tracking = TrackingService(repository=repository, activity=activity)
    return service, tracking
