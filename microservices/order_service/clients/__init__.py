"""
Order Service Clients Module

HTTP clients for the external providers the order service depends on
"""

from .razorpay_client import RazorpayClient, verify_webhook_signature, parse_webhook_event
from .shiprocket_client import ShiprocketClient, CarrierToken
from .sheets_client import SheetsClient

__all__ = [
    "RazorpayClient",
    "ShiprocketClient",
    "SheetsClient",
    "CarrierToken",
    "verify_webhook_signature",
    "parse_webhook_event",
]
