"""
Shiprocket Client for Order Service

HTTP client for the Shiprocket external API. One client instance holds the
process-wide carrier session: a bearer token cached until its expiry and
refreshed single-flight, so concurrent callers share one login.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from core.config import ShiprocketConfig
from ..models import PRODUCT_CATALOG, CarrierShipment, CarrierShipmentRequest
from ..protocols import CarrierAuthError, CarrierRejectedError, CarrierUnavailableError

logger = logging.getLogger(__name__)


@dataclass
class CarrierToken:
    """Cached carrier credential"""
    token: str
    expires_at: datetime

    def is_valid(self, now: datetime) -> bool:
        return bool(self.token) and now < self.expires_at


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ShiprocketClient:
    """Client for the Shiprocket shipping carrier"""

    def __init__(
        self,
        config: ShiprocketConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], datetime] = _utcnow,
        read_attempts: int = 3,
        retry_backoff: float = 0.5,
    ):
        """
        Initialize Shiprocket client

        Args:
            config: Shiprocket credentials, endpoint and pickup point
            transport: Optional httpx transport (tests)
            clock: Time source used for token expiry
            read_attempts: Attempts for idempotent reads (tracking, serviceability)
            retry_backoff: Exponential backoff multiplier in seconds
        """
        self.config = config
        self.base_url = config.api_url.rstrip('/')
        self.client = httpx.AsyncClient(
            timeout=config.timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )
        self._clock = clock
        self._token: Optional[CarrierToken] = None
        self._auth_lock = asyncio.Lock()
        self.read_attempts = read_attempts
        self.retry_backoff = retry_backoff

        logger.info(f"ShiprocketClient initialized with base_url: {self.base_url}")

    async def close(self):
        """Close HTTP client"""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # ========================================
    # Session
    # ========================================

    async def authenticate(self) -> CarrierToken:
        """Log in and return a fresh token"""
        try:
            response = await self.client.post(
                f"{self.base_url}/auth/login",
                json={"email": self.config.email, "password": self.config.password},
            )
        except httpx.HTTPError as e:
            logger.error(f"Shiprocket authentication failed: {e}")
            raise CarrierUnavailableError("Shiprocket authentication failed", details=str(e)) from e

        if response.status_code >= 500:
            raise CarrierUnavailableError(
                "Shiprocket authentication failed", details=f"HTTP {response.status_code}"
            )
        token = None
        if response.status_code < 400:
            try:
                token = response.json().get("token")
            except (ValueError, AttributeError):
                token = None
        if not token:
            logger.error(f"Shiprocket authentication rejected: {response.status_code} {response.text}")
            raise CarrierAuthError("Shiprocket authentication failed", details=response.text)

        issued = self._clock()
        logger.info("Shiprocket authenticated successfully")
        return CarrierToken(token=token, expires_at=issued + timedelta(hours=self.config.token_ttl_hours))

    async def ensure_authenticated(self) -> str:
        """Return a valid token, logging in if it is missing or expired"""
        token = self._token
        if token and token.is_valid(self._clock()):
            return token.token

        async with self._auth_lock:
            # Another caller may have refreshed while we waited
            token = self._token
            if token and token.is_valid(self._clock()):
                return token.token
            self._token = await self.authenticate()
            return self._token.token

    def _invalidate(self, token: str) -> None:
        if self._token and self._token.token == token:
            self._token = None

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        """Authenticated request; a 401 triggers one re-login and retry"""
        url = f"{self.base_url}{path}"
        response = None

        for attempt in (1, 2):
            token = await self.ensure_authenticated()
            try:
                response = await self.client.request(
                    method, url, headers={"Authorization": f"Bearer {token}"}, **kwargs
                )
            except httpx.TimeoutException as e:
                raise CarrierUnavailableError("Shiprocket timed out", details=str(e)) from e
            except httpx.HTTPError as e:
                raise CarrierUnavailableError("Shiprocket unreachable", details=str(e)) from e

            if response.status_code == 401 and attempt == 1:
                logger.warning(f"Shiprocket token rejected on {path}, re-authenticating")
                self._invalidate(token)
                continue
            break

        if response.status_code >= 500:
            logger.error(f"Shiprocket {path} returned {response.status_code}: {response.text}")
            raise CarrierUnavailableError(
                f"Shiprocket error {response.status_code}", details=response.text
            )
        if response.status_code >= 400:
            logger.error(f"Shiprocket rejected {path}: {response.status_code} {response.text}")
            raise CarrierRejectedError(
                f"Shiprocket rejected the request ({response.status_code})", details=response.text
            )

        try:
            return response.json()
        except ValueError as e:
            raise CarrierUnavailableError("Unexpected Shiprocket response", details=response.text) from e

    async def _read(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        """Idempotent request with bounded exponential backoff"""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.read_attempts),
            wait=wait_exponential(multiplier=self.retry_backoff, max=4),
            retry=retry_if_exception_type(CarrierUnavailableError),
            reraise=True,
        ):
            with attempt:
                return await self._request(method, path, **kwargs)

    # ========================================
    # Operations
    # ========================================

    def build_shipment_payload(self, request: CarrierShipmentRequest) -> Dict[str, Any]:
        product = PRODUCT_CATALOG[request.package_type]
        address = request.address
        sub_total = float(request.amount)

        return {
            "order_id": request.order_id,
            "order_date": request.order_date,
            "pickup_location": self.config.pickup_location,
            "billing_customer_name": request.customer_name,
            "billing_last_name": "",
            "billing_address": address.line1,
            "billing_address_2": address.line2 or "",
            "billing_city": address.city,
            "billing_pincode": address.pincode,
            "billing_state": address.state,
            "billing_country": address.country,
            "billing_email": request.customer_email or "",
            "billing_phone": request.customer_phone or "",
            "shipping_is_billing": True,
            "order_items": [{
                "name": product.name,
                "sku": product.sku,
                "units": 1,
                "selling_price": sub_total,
                "discount": 0,
                "tax": 0,
                "hsn": product.hsn,
            }],
            "payment_method": "Prepaid",
            "sub_total": sub_total,
            "length": product.length_cm,
            "breadth": product.breadth_cm,
            "height": product.height_cm,
            "weight": product.weight_kg,
        }

    async def create_shipment(self, request: CarrierShipmentRequest) -> CarrierShipment:
        """
        Create an ad-hoc Shiprocket order

        Not retried beyond the single re-authentication: a blind retry could
        book the pickup twice.
        """
        data = await self._request(
            "POST", "/orders/create/adhoc", json=self.build_shipment_payload(request)
        )
        logger.debug(f"Shiprocket create response for {request.order_id}: {data}")

        def _str(value):
            return None if value in (None, "") else str(value)

        return CarrierShipment(
            order_id=_str(data.get("order_id")),
            shipment_id=_str(data.get("shipment_id")),
            awb_code=_str(data.get("awb_code")),
            courier_name=_str(data.get("courier_name")),
            raw=data,
        )

    async def track_shipment(self, awb_code: str) -> Dict[str, Any]:
        """Live tracking data for an AWB number"""
        return await self._read("GET", f"/courier/track/awb/{awb_code}")

    async def check_serviceability(
        self,
        pickup_pincode: str,
        delivery_pincode: str,
        weight: float = 0.5
    ) -> List[Dict[str, Any]]:
        """Courier companies able to deliver between two pincodes"""
        data = await self._read(
            "GET",
            "/courier/serviceability/",
            params={
                "pickup_postcode": pickup_pincode,
                "delivery_postcode": delivery_pincode,
                "weight": weight,
                "cod": 0,
            },
        )
        payload = data.get("data") or {}
        if not isinstance(payload, dict):
            return []
        return payload.get("available_courier_companies") or []
