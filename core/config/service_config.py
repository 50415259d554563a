#!/usr/bin/env python3
"""External provider configuration

Endpoints and credentials for the third-party APIs the order service calls:
Razorpay (payments), Shiprocket (shipping) and the Google Sheets web-app
that mirrors order activity into a spreadsheet.
"""
import os
from dataclasses import dataclass
from typing import Optional


def _float(val: str, default: float) -> float:
    try:
        return float(val) if val else default
    except ValueError:
        return default

def _int(val: str, default: int) -> int:
    try:
        return int(val) if val else default
    except ValueError:
        return default


@dataclass
class RazorpayConfig:
    """Razorpay payment gateway settings"""
    key_id: Optional[str] = None
    key_secret: Optional[str] = None
    webhook_secret: Optional[str] = None
    api_url: str = "https://api.razorpay.com/v1"
    timeout: float = 10.0

    @classmethod
    def from_env(cls) -> 'RazorpayConfig':
        return cls(
            key_id=os.getenv("RAZORPAY_KEY_ID"),
            key_secret=os.getenv("RAZORPAY_KEY_SECRET"),
            webhook_secret=os.getenv("RAZORPAY_WEBHOOK_SECRET"),
            api_url=os.getenv("RAZORPAY_API_URL", "https://api.razorpay.com/v1"),
            timeout=_float(os.getenv("RAZORPAY_TIMEOUT", "10"), 10.0),
        )


@dataclass
class ShiprocketConfig:
    """Shiprocket carrier settings"""
    api_url: str = "https://apiv2.shiprocket.in/v1/external"
    email: Optional[str] = None
    password: Optional[str] = None

    # Pickup point registered in the Shiprocket dashboard
    pickup_location: str = "work"
    pickup_pincode: str = "590001"

    timeout: float = 10.0
    token_ttl_hours: int = 24

    @classmethod
    def from_env(cls) -> 'ShiprocketConfig':
        return cls(
            api_url=os.getenv("SHIPROCKET_API_URL", "https://apiv2.shiprocket.in/v1/external"),
            email=os.getenv("SHIPROCKET_EMAIL"),
            password=os.getenv("SHIPROCKET_PASSWORD"),
            pickup_location=os.getenv("SHIPROCKET_PICKUP_LOCATION", "work"),
            pickup_pincode=os.getenv("SHIPROCKET_PICKUP_PINCODE", "590001"),
            timeout=_float(os.getenv("SHIPROCKET_TIMEOUT", "10"), 10.0),
            token_ttl_hours=_int(os.getenv("SHIPROCKET_TOKEN_TTL_HOURS", "24"), 24),
        )


@dataclass
class NotificationConfig:
    """Best-effort spreadsheet notification settings"""
    sheets_url: Optional[str] = None
    timeout: float = 10.0

    @property
    def enabled(self) -> bool:
        return bool(self.sheets_url)

    @classmethod
    def from_env(cls) -> 'NotificationConfig':
        return cls(
            sheets_url=os.getenv("GOOGLE_SHEETS_URL") or None,
            timeout=_float(os.getenv("NOTIFY_TIMEOUT", "10"), 10.0),
        )
