"""
Order Service Data Models

Pydantic models for orders, activity entries, gateway webhooks, shipments
and tracking views.
"""

from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List, Dict, Any
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(str, Enum):
    """Order lifecycle status"""
    CREATED = "created"
    PAID = "paid"
    COMPLETED = "completed"
    FAILED = "failed"


class PackageType(str, Enum):
    """Package variant sold"""
    PDF = "pdf"
    PRINT = "print"

    @property
    def is_physical(self) -> bool:
        return PRODUCT_CATALOG[self].shipping_required


class ActivityCategory(str, Enum):
    """Activity log category, one file each"""
    ORDER = "order"
    PAYMENT = "payment"
    SHIPMENT = "shipment"


# Forward-only lifecycle. Terminal states have no outgoing edges.
ORDER_TRANSITIONS: Dict[OrderStatus, frozenset] = {
    OrderStatus.CREATED: frozenset({OrderStatus.PAID, OrderStatus.COMPLETED, OrderStatus.FAILED}),
    OrderStatus.PAID: frozenset({OrderStatus.COMPLETED, OrderStatus.FAILED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.FAILED: frozenset(),
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    """True if the lifecycle allows moving from current to target"""
    return target in ORDER_TRANSITIONS[current]


# Product Catalog

class ProductSpec(BaseModel):
    """Catalog entry for a package variant"""
    name: str
    sku: str
    hsn: int
    weight_kg: float
    length_cm: float
    breadth_cm: float
    height_cm: float
    shipping_required: bool


PRODUCT_CATALOG: Dict[PackageType, ProductSpec] = {
    PackageType.PDF: ProductSpec(
        name="Jeevan Margadarshana - PDF Report",
        sku="JM_PDF_001",
        hsn=998314,  # digital services
        weight_kg=0,
        length_cm=0,
        breadth_cm=0,
        height_cm=0,
        shipping_required=False,
    ),
    PackageType.PRINT: ProductSpec(
        name="Jeevan Margadarshana - Printed Book",
        sku="JM_BOOK_001",
        hsn=490110,  # printed books
        weight_kg=0.5,
        length_cm=25,
        breadth_cm=20,
        height_cm=3,
        shipping_required=True,
    ),
}


def to_minor_units(amount: Decimal) -> int:
    """Convert a major-unit amount (rupees) to minor units (paise)"""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_major_units(amount_minor: int) -> Decimal:
    return (Decimal(amount_minor) / 100).quantize(Decimal("0.01"))


# Core Order Models

class ShippingAddress(BaseModel):
    """Structured delivery address"""
    line1: str = Field(..., min_length=1)
    line2: Optional[str] = None
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    pincode: str = Field(..., pattern=r"^\d{6}$")
    country: str = "India"

    def one_line(self) -> str:
        parts = [self.line1, self.line2]
        return ", ".join(p for p in parts if p)


class CustomerDetails(BaseModel):
    """Customer contact bundle captured at checkout"""
    name: str
    email: str
    whatsapp: Optional[str] = None
    birth_date: Optional[str] = None
    birth_time: Optional[str] = None
    birth_place: Optional[str] = None
    address: Optional[ShippingAddress] = None


class ShipmentInfo(BaseModel):
    """Carrier identifiers recorded on the order"""
    carrier_order_id: Optional[str] = None
    shipment_id: Optional[str] = None
    awb_code: Optional[str] = None
    courier_name: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class Order(BaseModel):
    """Core order model"""
    id: str
    gateway_order_id: str
    receipt: str
    amount: int = Field(..., gt=0, description="Amount in minor currency units")
    currency: str = "INR"
    package_type: PackageType
    customer: CustomerDetails
    status: OrderStatus = OrderStatus.CREATED
    payment_id: Optional[str] = None
    failure_reason: Optional[str] = None
    shipment: Optional[ShipmentInfo] = None
    # Set while a carrier booking is in flight; at most one per order
    shipment_pending: bool = False
    delivered_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ActivityEntry(BaseModel):
    """Immutable activity log entry"""
    id: str
    category: ActivityCategory
    type: str
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)


# Request Models

class OrderCreateRequest(BaseModel):
    """Create order request (amount in major units, e.g. rupees)"""
    amount: Decimal = Field(..., description="Order amount in major currency units")
    currency: str = Field(default="INR", min_length=3, max_length=3)
    customer_name: str = Field(..., min_length=1)
    customer_email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    package_type: PackageType
    birth_date: Optional[str] = None
    birth_time: Optional[str] = None
    birth_place: Optional[str] = None
    whatsapp: Optional[str] = None
    address: Optional[ShippingAddress] = None

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v):
        if v < 1:
            raise ValueError("Amount must be at least 1")
        if v.as_tuple().exponent < -2:
            raise ValueError("Amount cannot have more than two decimal places")
        return v

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v):
        return v.upper()

    @model_validator(mode="after")
    def require_address_for_physical(self):
        if self.package_type.is_physical and self.address is None:
            raise ValueError("address with line1, city, state and pincode is required for print orders")
        return self

    @property
    def amount_minor(self) -> int:
        return to_minor_units(self.amount)

    def to_customer(self) -> CustomerDetails:
        return CustomerDetails(
            name=self.customer_name,
            email=self.customer_email,
            whatsapp=self.whatsapp,
            birth_date=self.birth_date,
            birth_time=self.birth_time,
            birth_place=self.birth_place,
            address=self.address,
        )


class ShipmentCreateRequest(BaseModel):
    """Manual shipment creation request

    Only order_id, customer_name, address and pincode are always required;
    print shipments fall back to the stored order for the rest.
    """
    order_id: str = Field(..., min_length=1)
    customer_name: str = Field(..., min_length=1)
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    address: str = Field(..., min_length=1)
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: str = Field(..., pattern=r"^\d{6}$")
    package_type: PackageType = PackageType.PRINT
    amount: Optional[Decimal] = Field(default=None, gt=0, description="Amount in major currency units")


class ServiceabilityRequest(BaseModel):
    """Courier serviceability check"""
    pickup_pincode: Optional[str] = None
    delivery_pincode: str = Field(..., pattern=r"^\d{6}$")
    weight: float = Field(default=0.5, gt=0)


# Response Models

class OrderCreateResponse(BaseModel):
    """Order creation response"""
    success: bool = True
    order_id: str
    amount: int
    currency: str
    receipt: str
    local_order_id: str


class CarrierShipmentData(BaseModel):
    """Carrier identifiers returned to the caller"""
    order_id: Optional[str] = None
    shipment_id: Optional[str] = None
    awb_code: Optional[str] = None
    courier_name: Optional[str] = None


class ShipmentResponse(BaseModel):
    """Shipment creation response"""
    success: bool = True
    message: str
    order_id: Optional[str] = None
    delivery_type: Optional[str] = None
    shiprocket_data: Optional[CarrierShipmentData] = None


# Gateway Models

class GatewayOrder(BaseModel):
    """Remote order created at the payment gateway"""
    id: str
    amount: int
    currency: str
    receipt: Optional[str] = None
    status: Optional[str] = None


class WebhookEventType(str, Enum):
    """Webhook events the lifecycle reacts to"""
    PAYMENT_CAPTURED = "payment.captured"
    PAYMENT_FAILED = "payment.failed"
    ORDER_PAID = "order.paid"


class PaymentEntity(BaseModel):
    """Payment entity inside a webhook payload"""
    id: str
    order_id: Optional[str] = None
    amount: int = 0
    currency: Optional[str] = None
    status: Optional[str] = None
    email: Optional[str] = None
    contact: Optional[str] = None
    error_code: Optional[str] = None
    error_description: Optional[str] = None


class GatewayOrderEntity(BaseModel):
    """Order entity inside a webhook payload"""
    id: str
    amount: int = 0
    currency: Optional[str] = None
    status: Optional[str] = None


class WebhookEvent(BaseModel):
    """Decoded webhook; tag lives in `event`"""
    event: str
    payment: Optional[PaymentEntity] = None
    order: Optional[GatewayOrderEntity] = None
    created_at: Optional[int] = None

    @property
    def kind(self) -> Optional[WebhookEventType]:
        try:
            return WebhookEventType(self.event)
        except ValueError:
            return None

    @property
    def gateway_order_id(self) -> Optional[str]:
        if self.order is not None:
            return self.order.id
        if self.payment is not None:
            return self.payment.order_id
        return None


class CarrierShipment(BaseModel):
    """Shipment created at the carrier"""
    order_id: Optional[str] = None
    shipment_id: Optional[str] = None
    awb_code: Optional[str] = None
    courier_name: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)


class CarrierShipmentRequest(BaseModel):
    """Everything the carrier needs to book a pickup"""
    order_id: str
    order_date: str
    customer_name: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    address: ShippingAddress
    package_type: PackageType
    amount: Decimal


# Tracking Models

class TimelineEntry(BaseModel):
    """One step of an order's tracking timeline"""
    timestamp: datetime
    status: str
    description: str
    type: str


class OrderTrackingOrder(BaseModel):
    id: str
    gateway_order_id: str
    status: OrderStatus
    amount: int
    currency: str
    package_type: PackageType
    created_at: datetime
    updated_at: datetime


class OrderTracking(BaseModel):
    """Merged order/payment/shipment view"""
    order: OrderTrackingOrder
    customer: CustomerDetails
    timeline: List[TimelineEntry] = Field(default_factory=list)
    awb_code: Optional[str] = None
    courier_name: Optional[str] = None


class TrackingSummary(BaseModel):
    """Aggregate counts and recent activity"""
    total_orders: int
    orders_by_status: Dict[str, int]
    orders_by_package: Dict[str, int]
    total_revenue: int
    recent_orders: List[Order]
    recent_payments: List[ActivityEntry]
    recent_shipments: List[ActivityEntry]
