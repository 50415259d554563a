"""
Razorpay Client for Order Service

HTTP client for the Razorpay Orders API plus webhook verification/decoding.
"""

import hashlib
import hmac
import json
import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from core.config import RazorpayConfig
from ..models import GatewayOrder, WebhookEvent
from ..protocols import GatewayRejectedError, GatewayUnavailableError, OrderValidationError

logger = logging.getLogger(__name__)


def verify_webhook_signature(raw_body: bytes, signature: Optional[str], secret: Optional[str]) -> bool:
    """
    Check a webhook signature

    Razorpay signs the exact request bytes with HMAC-SHA256 and sends the hex
    digest in X-Razorpay-Signature. The comparison is constant-time.
    """
    if not signature or not secret:
        return False
    expected = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected.encode("ascii"), signature.strip().encode("utf-8"))


def parse_webhook_event(raw_body: bytes) -> WebhookEvent:
    """Decode a verified webhook body into a WebhookEvent"""
    try:
        body = json.loads(raw_body)
    except (ValueError, UnicodeDecodeError) as e:
        raise OrderValidationError("Webhook body is not valid JSON", details=str(e)) from e

    if not isinstance(body, dict) or not body.get("event"):
        raise OrderValidationError("Webhook body has no event field")

    payload = body.get("payload") or {}
    payment = (payload.get("payment") or {}).get("entity")
    order = (payload.get("order") or {}).get("entity")

    try:
        return WebhookEvent(
            event=body["event"],
            payment=payment,
            order=order,
            created_at=body.get("created_at"),
        )
    except ValidationError as e:
        raise OrderValidationError(f"Malformed {body['event']} webhook", details=str(e)) from e


class RazorpayClient:
    """Client for the Razorpay payment gateway"""

    def __init__(self, config: RazorpayConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Initialize Razorpay client

        Args:
            config: Razorpay credentials and endpoint
            transport: Optional httpx transport (tests)
        """
        self.config = config
        self.base_url = config.api_url.rstrip('/')
        auth = (config.key_id, config.key_secret) if config.key_id and config.key_secret else None
        self.client = httpx.AsyncClient(timeout=config.timeout, auth=auth, transport=transport)

        if not auth:
            logger.warning("RAZORPAY_KEY_ID / RAZORPAY_KEY_SECRET not set")
        logger.info(f"RazorpayClient initialized with base_url: {self.base_url}")

    async def close(self):
        """Close HTTP client"""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def create_remote_order(
        self,
        amount: int,
        currency: str,
        receipt: str,
        notes: Optional[Dict[str, Any]] = None
    ) -> GatewayOrder:
        """
        Create a payment order at Razorpay

        Args:
            amount: Amount in minor units (paise)
            currency: Currency code
            receipt: Local receipt id
            notes: Key/value notes stored with the order

        Returns:
            GatewayOrder as confirmed by Razorpay
        """
        payload = {
            "amount": amount,
            "currency": currency,
            "receipt": receipt,
            "notes": {k: "" if v is None else str(v) for k, v in (notes or {}).items()},
        }

        try:
            response = await self.client.post(f"{self.base_url}/orders", json=payload)
        except httpx.TimeoutException as e:
            logger.error(f"Razorpay order creation timed out: {e}")
            raise GatewayUnavailableError("Payment gateway timed out", details=str(e)) from e
        except httpx.HTTPError as e:
            logger.error(f"Error creating Razorpay order: {e}")
            raise GatewayUnavailableError("Payment gateway unreachable", details=str(e)) from e

        if response.status_code >= 500:
            logger.error(f"Razorpay returned {response.status_code}: {response.text}")
            raise GatewayUnavailableError(
                f"Payment gateway error {response.status_code}", details=response.text
            )
        if response.status_code >= 400:
            description = self._error_description(response)
            logger.error(f"Razorpay rejected order {receipt}: {description}")
            raise GatewayRejectedError("Payment gateway rejected the order", details=description)

        try:
            return GatewayOrder.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise GatewayUnavailableError("Unexpected payment gateway response", details=str(e)) from e

    def verify_webhook_signature(self, raw_body: bytes, signature: Optional[str]) -> bool:
        """Verify with the configured webhook secret"""
        if not self.config.webhook_secret:
            logger.error("RAZORPAY_WEBHOOK_SECRET not set, rejecting webhook")
            return False
        return verify_webhook_signature(raw_body, signature, self.config.webhook_secret)

    def parse_webhook_event(self, raw_body: bytes) -> WebhookEvent:
        return parse_webhook_event(raw_body)

    @staticmethod
    def _error_description(response: httpx.Response) -> str:
        try:
            error = response.json().get("error") or {}
            return error.get("description") or response.text
        except (ValueError, AttributeError):
            return response.text
