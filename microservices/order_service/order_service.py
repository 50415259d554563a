"""
Order Service Business Logic

Order lifecycle: create the remote payment order, apply payment webhooks to
the order state machine, and book carrier shipments for physical packages.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from .models import (
    ActivityCategory, ActivityEntry, CarrierShipment, CarrierShipmentData, CarrierShipmentRequest,
    Order, OrderCreateRequest, OrderCreateResponse, OrderStatus, PackageType,
    ServiceabilityRequest, ShipmentCreateRequest, ShipmentInfo, ShipmentResponse,
    ShippingAddress, WebhookEvent, WebhookEventType, can_transition, to_major_units,
)
from .protocols import (
    ActivityRepositoryProtocol, NotifierProtocol, OrderNotFoundError,
    OrderRepositoryProtocol, OrderServiceError, OrderValidationError,
    PaymentGatewayProtocol, PersistenceError, ShippingCarrierProtocol,
    SignatureInvalidError, UpstreamRejectedError, UpstreamUnavailableError,
)

logger = logging.getLogger(__name__)


def generate_receipt() -> str:
    return f"ORD_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


@dataclass
class TransitionResult:
    """Outcome of applying one lifecycle event to an order"""
    order: Order
    previous: OrderStatus
    target: OrderStatus
    applied: bool

    @property
    def duplicate(self) -> bool:
        return not self.applied and self.previous == self.target


class OrderService:
    """
    Order lifecycle controller

    Every webhook handler is idempotent: the status check and the update
    happen inside the store's per-order lock, and side effects (activity
    entries, notifications, shipments) run only when the transition was
    actually applied.
    """

    def __init__(
        self,
        repository: OrderRepositoryProtocol,
        activity: ActivityRepositoryProtocol,
        payment_gateway: PaymentGatewayProtocol,
        carrier: ShippingCarrierProtocol,
        notifier: Optional[NotifierProtocol] = None,
        default_pickup_pincode: str = "590001",
    ):
        self.repository = repository
        self.activity = activity
        self.payment_gateway = payment_gateway
        self.carrier = carrier
        self.notifier = notifier
        self.default_pickup_pincode = default_pickup_pincode
        # Manual bookings in flight for order ids with no local record
        self._unrecorded_bookings: Set[str] = set()

        self._webhook_handlers = {
            WebhookEventType.PAYMENT_CAPTURED: self._on_payment_captured,
            WebhookEventType.PAYMENT_FAILED: self._on_payment_failed,
            WebhookEventType.ORDER_PAID: self._on_order_paid,
        }

        logger.info("OrderService initialized")

    # ========================================
    # Order creation
    # ========================================

    async def create_order(self, request: OrderCreateRequest) -> OrderCreateResponse:
        """
        Create a gateway order and persist the local record

        Args:
            request: Validated order creation request

        Returns:
            Gateway order id, confirmed amount/currency, receipt and local id
        """
        receipt = generate_receipt()
        notes = {
            "customer_name": request.customer_name,
            "customer_email": request.customer_email,
            "package_type": request.package_type.value,
            "birth_date": request.birth_date,
            "birth_time": request.birth_time,
            "birth_place": request.birth_place,
            "whatsapp": request.whatsapp,
            "address": request.address.one_line() if request.address else None,
        }

        try:
            gateway_order = await self.payment_gateway.create_remote_order(
                amount=request.amount_minor,
                currency=request.currency,
                receipt=receipt,
                notes=notes,
            )
        except (UpstreamUnavailableError, UpstreamRejectedError) as e:
            logger.error(f"Order creation failed for receipt {receipt}: {e.message}")
            await self.activity.append(ActivityCategory.ORDER, "ORDER_ERROR", {
                "action": "error",
                "receipt": receipt,
                "error": e.message,
                "details": e.details,
                "customer": request.customer_name,
            })
            raise

        if gateway_order.amount != request.amount_minor:
            logger.warning(
                f"Gateway confirmed {gateway_order.amount} for order {gateway_order.id}, "
                f"requested {request.amount_minor}"
            )

        order = Order(
            id=f"ord_{uuid.uuid4().hex}",
            gateway_order_id=gateway_order.id,
            receipt=gateway_order.receipt or receipt,
            amount=gateway_order.amount,
            currency=gateway_order.currency,
            package_type=request.package_type,
            customer=request.to_customer(),
        )

        try:
            await self.repository.create_order(order)
        except PersistenceError:
            logger.error(f"Gateway order {gateway_order.id} created but not stored locally")
            raise

        await self.activity.append(ActivityCategory.ORDER, "ORDER_CREATED", {
            "action": "created",
            "order_id": order.gateway_order_id,
            "local_order_id": order.id,
            "amount": order.amount,
            "currency": order.currency,
            "customer": order.customer.name,
        })

        await self._notify(order, status="created")

        logger.info(f"Order created: {order.gateway_order_id} ({order.package_type.value}, {order.amount} {order.currency})")
        return OrderCreateResponse(
            order_id=gateway_order.id,
            amount=gateway_order.amount,
            currency=gateway_order.currency,
            receipt=order.receipt,
            local_order_id=order.id,
        )

    async def get_order(self, order_id: str) -> Order:
        return await self.repository.get_order(order_id)

    async def list_orders(self) -> List[Order]:
        return await self.repository.list_orders()

    # ========================================
    # Webhooks
    # ========================================

    async def handle_webhook(self, raw_body: bytes, signature: Optional[str]) -> Optional[Order]:
        """
        Verify, decode and apply a payment webhook

        Args:
            raw_body: Request body exactly as received
            signature: X-Razorpay-Signature header

        Returns:
            The order after the event, or None if the event was ignored
        """
        if not self.payment_gateway.verify_webhook_signature(raw_body, signature):
            logger.error("Invalid webhook signature")
            raise SignatureInvalidError("Invalid signature")

        event = self.payment_gateway.parse_webhook_event(raw_body)
        logger.info(f"Webhook received: {event.event} for order {event.gateway_order_id}")

        handler = self._webhook_handlers.get(event.kind)
        if handler is None:
            logger.info(f"Unhandled webhook event: {event.event}")
            return None
        return await handler(event)

    async def _transition(
        self,
        order_id: str,
        target: OrderStatus,
        patch: Optional[Callable[[Order], Dict[str, Any]]] = None,
        guard: Optional[Callable[[Order], bool]] = None,
    ) -> Optional[TransitionResult]:
        """Move an order to target if the lifecycle allows it; None if unknown"""
        observed: Dict[str, Any] = {}

        def mutator(order: Order) -> Optional[Dict[str, Any]]:
            observed["previous"] = order.status
            applied = can_transition(order.status, target) and (guard is None or guard(order))
            observed["applied"] = applied
            if not applied:
                return None
            changes = {"status": target}
            if patch is not None:
                changes.update(patch(order))
            return changes

        try:
            order = await self.repository.update_order(order_id, mutator)
        except OrderNotFoundError:
            logger.error(f"Order not found: {order_id}")
            return None

        return TransitionResult(
            order=order,
            previous=observed["previous"],
            target=target,
            applied=observed["applied"],
        )

    async def _ignored(self, result: TransitionResult, event: WebhookEvent) -> None:
        if result.duplicate:
            logger.info(f"Order {result.order.gateway_order_id} already {result.target.value}, ignoring duplicate {event.event}")
            return
        logger.warning(
            f"Ignoring {event.event} for order {result.order.gateway_order_id}: "
            f"{result.previous.value} -> {result.target.value} not allowed"
        )
        await self.activity.append(ActivityCategory.PAYMENT, "TRANSITION_IGNORED", {
            "order_id": result.order.gateway_order_id,
            "event": event.event,
            "from_status": result.previous.value,
            "to_status": result.target.value,
            "payment_id": event.payment.id if event.payment else None,
        })

    @staticmethod
    def _delivery_patch(order: Order) -> Dict[str, Any]:
        # Digital packages count as delivered once paid
        if not order.package_type.is_physical and order.delivered_at is None:
            return {"delivered_at": datetime.now(timezone.utc)}
        return {}

    async def _on_payment_captured(self, event: WebhookEvent) -> Optional[Order]:
        payment = event.payment
        if payment is None or not payment.order_id:
            raise OrderValidationError("payment.captured webhook without payment entity")

        logger.info(f"Payment captured: {payment.id} for order: {payment.order_id}")

        def patch(order: Order) -> Dict[str, Any]:
            return {"payment_id": payment.id, **self._delivery_patch(order)}

        result = await self._transition(payment.order_id, OrderStatus.PAID, patch=patch)
        if result is None:
            return None
        if not result.applied:
            await self._ignored(result, event)
            return result.order

        order = result.order
        await self.activity.append(ActivityCategory.PAYMENT, "PAYMENT_CAPTURED", {
            "payment_id": payment.id,
            "order_id": payment.order_id,
            "amount": str(to_major_units(payment.amount)),
            "customer_email": payment.email,
            "customer_contact": payment.contact,
        })
        await self._notify(order, status="paid", payment_id=payment.id)

        if result.previous == OrderStatus.CREATED:
            order = await self._fulfil(order)

        logger.info(f"Order {payment.order_id} processed successfully")
        return order

    async def _on_payment_failed(self, event: WebhookEvent) -> Optional[Order]:
        payment = event.payment
        if payment is None or not payment.order_id:
            raise OrderValidationError("payment.failed webhook without payment entity")

        logger.info(f"Payment failed: {payment.id} for order: {payment.order_id}")

        def guard(order: Order) -> bool:
            # A failed earlier attempt must not fail an order whose capture came from another payment
            return not (order.status == OrderStatus.PAID and order.payment_id and order.payment_id != payment.id)

        def patch(order: Order) -> Dict[str, Any]:
            return {
                "failure_reason": payment.error_description or payment.error_code or "Payment failed",
                "payment_id": order.payment_id or payment.id,
            }

        result = await self._transition(payment.order_id, OrderStatus.FAILED, patch=patch, guard=guard)
        if result is None:
            return None
        if not result.applied:
            await self._ignored(result, event)
            return result.order

        await self.activity.append(ActivityCategory.PAYMENT, "PAYMENT_FAILED", {
            "payment_id": payment.id,
            "order_id": payment.order_id,
            "amount": str(to_major_units(payment.amount)),
            "error_code": payment.error_code,
            "error_description": payment.error_description,
        })
        return result.order

    async def _on_order_paid(self, event: WebhookEvent) -> Optional[Order]:
        entity = event.order
        if entity is None:
            raise OrderValidationError("order.paid webhook without order entity")

        logger.info(f"Order paid: {entity.id}")

        result = await self._transition(entity.id, OrderStatus.COMPLETED, patch=self._delivery_patch)
        if result is None:
            return None
        if not result.applied:
            await self._ignored(result, event)
            return result.order

        await self.activity.append(ActivityCategory.PAYMENT, "ORDER_COMPLETED", {
            "order_id": entity.id,
            "amount": str(to_major_units(entity.amount)),
            "currency": entity.currency,
        })

        order = result.order
        # order.paid overtook payment.captured: this event is the first sign of payment
        if result.previous == OrderStatus.CREATED:
            order = await self._fulfil(order)
        return order

    # ========================================
    # Fulfilment
    # ========================================

    async def _fulfil(self, order: Order) -> Order:
        """Runs once per order, on its first transition out of created"""
        if not order.package_type.is_physical:
            logger.info(f"Digital delivery for order {order.gateway_order_id} - no shipping required")
            return order
        return await self._trigger_shipment(order)

    async def _claim_shipment(self, order_id: str) -> Tuple[Order, bool]:
        """
        Mark a carrier booking as in flight for an order

        The check and the marker are applied under the store's per-order
        lock, so of several concurrent callers exactly one gets the claim.

        Returns:
            (order, claimed)
        """
        claimed = {"ok": False}

        def mutator(order: Order) -> Optional[Dict[str, Any]]:
            if order.shipment is not None or order.shipment_pending:
                return None
            claimed["ok"] = True
            return {"shipment_pending": True}

        order = await self.repository.update_order(order_id, mutator)
        return order, claimed["ok"]

    async def _release_shipment(self, order_id: str) -> None:
        """Drop the in-flight marker after a failed booking"""
        try:
            await self.repository.update_order(order_id, lambda _: {"shipment_pending": False})
        except OrderServiceError as e:
            logger.error(f"Could not release shipment claim on order {order_id}: {e.message}")

    async def _trigger_shipment(self, order: Order) -> Order:
        """Book a shipment; failures are recorded but do not touch payment state"""
        address = order.customer.address
        if address is None:
            logger.error(f"Order {order.gateway_order_id} has no shipping address")
            await self.activity.append(ActivityCategory.SHIPMENT, "SHIPMENT_ERROR", {
                "order_id": order.gateway_order_id,
                "error": "No shipping address on order",
                "trigger": "auto",
            })
            return order

        try:
            order, claimed = await self._claim_shipment(order.id)
        except OrderServiceError as e:
            logger.error(f"Could not claim shipment for {order.gateway_order_id}: {e.message}")
            return order
        if not claimed:
            logger.info(f"Shipment for order {order.gateway_order_id} already booked or in progress")
            return order

        request = CarrierShipmentRequest(
            order_id=order.gateway_order_id,
            order_date=datetime.now(timezone.utc).strftime("%Y-%m-%d"),
            customer_name=order.customer.name,
            customer_email=order.customer.email,
            customer_phone=order.customer.whatsapp,
            address=address,
            package_type=order.package_type,
            amount=to_major_units(order.amount),
        )

        try:
            shipment = await self.carrier.create_shipment(request)
        except OrderServiceError as e:
            logger.error(f"Failed to create shipment automatically for {order.gateway_order_id}: {e.message}")
            await self._release_shipment(order.id)
            await self.activity.append(ActivityCategory.SHIPMENT, "SHIPMENT_ERROR", {
                "order_id": order.gateway_order_id,
                "error": e.message,
                "details": e.details,
                "trigger": "auto",
            })
            return order

        await self.activity.append(ActivityCategory.SHIPMENT, "SHIPMENT_CREATED", {
            "order_id": order.gateway_order_id,
            "shiprocket_order_id": shipment.order_id,
            "shipment_id": shipment.shipment_id,
            "awb_code": shipment.awb_code,
            "courier_name": shipment.courier_name,
            "customer_name": order.customer.name,
            "trigger": "auto",
        })
        logger.info(f"Shipment created automatically for {order.gateway_order_id}: {shipment.shipment_id}")
        return await self._record_shipment(order.id, shipment) or order

    async def _record_shipment(self, order_id: str, shipment: CarrierShipment) -> Optional[Order]:
        info = ShipmentInfo(
            carrier_order_id=shipment.order_id,
            shipment_id=shipment.shipment_id,
            awb_code=shipment.awb_code,
            courier_name=shipment.courier_name,
        )
        try:
            return await self.repository.update_order(
                order_id, lambda _: {"shipment": info, "shipment_pending": False}
            )
        except OrderNotFoundError:
            return None
        except PersistenceError as e:
            logger.error(f"Shipment {shipment.shipment_id} created but not stored on order {order_id}: {e.details}")
            return None

    @staticmethod
    def _manual_shipment_address(request: ShipmentCreateRequest, local_order: Optional[Order]) -> ShippingAddress:
        """Request fields first, the stored order's address for anything missing"""
        stored = local_order.customer.address if local_order is not None else None
        city = request.city or (stored.city if stored else None)
        state = request.state or (stored.state if stored else None)
        missing = [name for name, value in (("city", city), ("state", state)) if not value]
        if missing:
            raise OrderValidationError(
                "Missing required fields for physical shipment", details=", ".join(missing)
            )
        return ShippingAddress(line1=request.address, city=city, state=state, pincode=request.pincode)

    async def create_shipment(self, request: ShipmentCreateRequest) -> ShipmentResponse:
        """
        Manually book a shipment

        Digital packages short-circuit without calling the carrier. For a
        stored order the booking is claimed on the order first, so it never
        overlaps another manual or automatic booking of the same order.
        """
        if request.package_type == PackageType.PDF:
            await self.activity.append(ActivityCategory.SHIPMENT, "DIGITAL_DELIVERY", {
                "order_id": request.order_id,
                "customer_name": request.customer_name,
                "package_type": request.package_type.value,
                "message": "PDF report - no physical shipping required",
            })
            return ShipmentResponse(
                message="Digital delivery - no shipping required",
                order_id=request.order_id,
                delivery_type="digital",
            )

        local_order = None
        try:
            local_order = await self.repository.get_order(request.order_id)
        except OrderNotFoundError:
            logger.info(f"Shipment requested for order {request.order_id} with no local record")

        address = self._manual_shipment_address(request, local_order)
        if request.amount is not None:
            amount = request.amount
        elif local_order is not None:
            amount = to_major_units(local_order.amount)
        else:
            raise OrderValidationError("Missing required fields for physical shipment", details="amount")

        carrier_request = CarrierShipmentRequest(
            order_id=request.order_id,
            order_date=datetime.now(timezone.utc).strftime("%Y-%m-%d"),
            customer_name=request.customer_name,
            customer_email=request.customer_email,
            customer_phone=request.customer_phone,
            address=address,
            package_type=request.package_type,
            amount=amount,
        )

        if local_order is not None:
            local_order, claimed = await self._claim_shipment(local_order.id)
            if not claimed:
                detail = f"shipment_id={local_order.shipment.shipment_id}" if local_order.shipment else "booking in progress"
                raise OrderValidationError(f"Shipment already created for order {request.order_id}", details=detail)
        elif request.order_id in self._unrecorded_bookings:
            raise OrderValidationError(
                f"Shipment already created for order {request.order_id}", details="booking in progress"
            )
        else:
            self._unrecorded_bookings.add(request.order_id)

        try:
            shipment = await self.carrier.create_shipment(carrier_request)
        except OrderServiceError as e:
            logger.error(f"Shipment creation error for {request.order_id}: {e.message}")
            if local_order is not None:
                await self._release_shipment(local_order.id)
            await self.activity.append(ActivityCategory.SHIPMENT, "SHIPMENT_ERROR", {
                "order_id": request.order_id,
                "error": e.message,
                "details": e.details,
                "input": request.model_dump(mode="json"),
            })
            raise
        finally:
            self._unrecorded_bookings.discard(request.order_id)

        await self.activity.append(ActivityCategory.SHIPMENT, "SHIPMENT_CREATED", {
            "order_id": request.order_id,
            "shiprocket_order_id": shipment.order_id,
            "shipment_id": shipment.shipment_id,
            "awb_code": shipment.awb_code,
            "courier_name": shipment.courier_name,
            "customer_name": request.customer_name,
            "trigger": "manual",
        })
        if local_order is not None:
            await self._record_shipment(local_order.id, shipment)

        return ShipmentResponse(
            message="Shipment created successfully",
            shiprocket_data=CarrierShipmentData(
                order_id=shipment.order_id,
                shipment_id=shipment.shipment_id,
                awb_code=shipment.awb_code,
                courier_name=shipment.courier_name,
            ),
        )

    async def track_awb(self, awb_code: str) -> Dict[str, Any]:
        """Live carrier tracking for an AWB"""
        tracking = await self.carrier.track_shipment(awb_code)
        track_status = (tracking.get("tracking_data") or {}).get("track_status")
        await self.activity.append(ActivityCategory.SHIPMENT, "TRACKING_REQUESTED", {
            "awb": awb_code,
            "status": track_status,
        })
        return tracking

    async def check_serviceability(self, request: ServiceabilityRequest) -> List[Dict[str, Any]]:
        return await self.carrier.check_serviceability(
            pickup_pincode=request.pickup_pincode or self.default_pickup_pincode,
            delivery_pincode=request.delivery_pincode,
            weight=request.weight,
        )

    async def payment_logs(self, limit: int = 50) -> List[ActivityEntry]:
        return await asyncio.to_thread(self.activity.recent, ActivityCategory.PAYMENT, limit)

    async def shipment_logs(self) -> List[ActivityEntry]:
        return await asyncio.to_thread(list, self.activity.query(ActivityCategory.SHIPMENT))

    # ========================================
    # Notifications
    # ========================================

    async def _notify(self, order: Order, status: str, payment_id: Optional[str] = None) -> None:
        """Mirror the order into the spreadsheet; never fails the caller"""
        if self.notifier is None:
            return
        customer = order.customer
        payload = {
            "fullName": customer.name,
            "email": customer.email,
            "whatsapp": customer.whatsapp or "",
            "birthDate": customer.birth_date or "",
            "birthTime": customer.birth_time or "",
            "birthPlace": customer.birth_place or "",
            "address": customer.address.one_line() if customer.address else "",
            "package": order.package_type.value,
            "amount": str(to_major_units(order.amount)),
            "orderId": order.gateway_order_id,
            "status": status,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if payment_id:
            payload["paymentId"] = payment_id
        try:
            if not await self.notifier.notify(payload):
                logger.warning(f"Spreadsheet not updated for order {order.gateway_order_id} ({status})")
        except Exception as e:
            logger.error(f"Spreadsheet notification failed for {order.gateway_order_id}: {e}")
