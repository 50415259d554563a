"""
Order Service Protocols (Interfaces)

These interfaces define contracts for dependency injection.
NO import-time I/O dependencies - safe to import anywhere.
"""
from typing import Any, Callable, Dict, Iterator, List, Optional, Protocol, runtime_checkable

# Import only models (no I/O dependencies)
from .models import (
    ActivityCategory, ActivityEntry, CarrierShipment, CarrierShipmentRequest,
    GatewayOrder, Order, WebhookEvent,
)


# ============================================================================
# Custom Exceptions - defined here to avoid importing repository
# ============================================================================

class OrderServiceError(Exception):
    """Base exception for order service errors"""

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class OrderValidationError(OrderServiceError):
    """Missing or invalid input"""
    pass


class OrderNotFoundError(OrderServiceError):
    """Order or shipment not found"""
    pass


class DuplicateOrderError(OrderServiceError):
    """Order id already stored"""
    pass


class SignatureInvalidError(OrderServiceError):
    """Webhook signature did not verify"""
    pass


class PersistenceError(OrderServiceError):
    """Store read/write failure"""
    pass


class UpstreamUnavailableError(OrderServiceError):
    """Provider unreachable, timed out or returned 5xx"""
    pass


class UpstreamRejectedError(OrderServiceError):
    """Provider refused the request"""
    pass


class GatewayUnavailableError(UpstreamUnavailableError):
    pass


class GatewayRejectedError(UpstreamRejectedError):
    pass


class CarrierUnavailableError(UpstreamUnavailableError):
    pass


class CarrierRejectedError(UpstreamRejectedError):
    pass


class CarrierAuthError(CarrierRejectedError):
    """Carrier login failed"""
    pass


# Mutator passed to update_order: receives the current order, returns a field
# patch. An empty patch leaves the record untouched.
OrderMutator = Callable[[Order], Optional[Dict[str, Any]]]


# ============================================================================
# Repository Protocols
# ============================================================================

@runtime_checkable
class OrderRepositoryProtocol(Protocol):
    """Interface for the order store"""

    async def create_order(self, order: Order) -> Order:
        """Store a new order; DuplicateOrderError if the id exists"""
        ...

    async def get_order(self, order_id: str) -> Order:
        """Get by local or gateway id; OrderNotFoundError if absent"""
        ...

    async def update_order(self, order_id: str, mutator: OrderMutator) -> Order:
        """Apply a patch under the per-order lock"""
        ...

    async def list_orders(self) -> List[Order]:
        """All orders in stored order"""
        ...


@runtime_checkable
class ActivityRepositoryProtocol(Protocol):
    """Interface for the append-only activity log"""

    async def append(
        self,
        category: ActivityCategory,
        event_type: str,
        data: Optional[Dict[str, Any]] = None
    ) -> Optional[ActivityEntry]:
        """Record an entry; never raises"""
        ...

    def query(
        self,
        category: ActivityCategory,
        predicate: Optional[Callable[[ActivityEntry], bool]] = None
    ) -> Iterator[ActivityEntry]:
        """Lazy iteration over matching entries"""
        ...

    def recent(self, category: ActivityCategory, limit: int = 50) -> List[ActivityEntry]:
        """Last N entries of a category"""
        ...


# ============================================================================
# Provider Client Protocols
# ============================================================================

@runtime_checkable
class PaymentGatewayProtocol(Protocol):
    """Interface for the payment gateway"""

    async def create_remote_order(
        self,
        amount: int,
        currency: str,
        receipt: str,
        notes: Optional[Dict[str, Any]] = None
    ) -> GatewayOrder:
        ...

    def verify_webhook_signature(self, raw_body: bytes, signature: Optional[str]) -> bool:
        ...

    def parse_webhook_event(self, raw_body: bytes) -> WebhookEvent:
        ...


@runtime_checkable
class ShippingCarrierProtocol(Protocol):
    """Interface for the shipping carrier"""

    async def create_shipment(self, request: CarrierShipmentRequest) -> CarrierShipment:
        ...

    async def track_shipment(self, awb_code: str) -> Dict[str, Any]:
        ...

    async def check_serviceability(
        self,
        pickup_pincode: str,
        delivery_pincode: str,
        weight: float = 0.5
    ) -> List[Dict[str, Any]]:
        ...


@runtime_checkable
class NotifierProtocol(Protocol):
    """Interface for best-effort notifications"""

    async def notify(self, payload: Dict[str, Any]) -> bool:
        """Send payload; returns False on failure, never raises"""
        ...
