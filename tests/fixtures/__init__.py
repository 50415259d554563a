"""
Shared Test Fixtures

Centralized factories used across all test layers.

Structure:
    - order_fixtures.py: Order requests, Razorpay webhook bodies, signatures
"""

from .order_fixtures import (
    WEBHOOK_SECRET,
    make_gateway_order_id,
    make_payment_id,
    make_address,
    make_order_create_request,
    make_payment_webhook,
    make_order_paid_webhook,
    sign_body,
)

__all__ = [
    'WEBHOOK_SECRET',
    'make_gateway_order_id',
    'make_payment_id',
    'make_address',
    'make_order_create_request',
    'make_payment_webhook',
    'make_order_paid_webhook',
    'sign_body',
]
