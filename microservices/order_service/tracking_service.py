"""
Tracking Service

Read-only projection over the order store and the activity log: order
timelines, AWB lookups and the dashboard summary. Never mutates either store.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Tuple

from .models import (
    ActivityCategory, ActivityEntry, Order, OrderStatus, OrderTracking,
    OrderTrackingOrder, PackageType, TimelineEntry, TrackingSummary,
)
from .protocols import ActivityRepositoryProtocol, OrderNotFoundError, OrderRepositoryProtocol

logger = logging.getLogger(__name__)


def _payment_step(entry: ActivityEntry) -> Optional[Tuple[str, str]]:
    data = entry.data
    if entry.type == "PAYMENT_CAPTURED":
        return "Payment Successful", f"Payment of ₹{data.get('amount')} has been captured successfully"
    if entry.type == "PAYMENT_FAILED":
        return "Payment Failed", f"Payment failed: {data.get('error_description') or 'Unknown error'}"
    if entry.type == "ORDER_COMPLETED":
        return "Order Completed", "Order has been completed successfully"
    return None


def _shipment_step(entry: ActivityEntry) -> Optional[Tuple[str, str]]:
    data = entry.data
    if entry.type == "DIGITAL_DELIVERY":
        return "Digital Delivery", "PDF report - no physical shipping required"
    if entry.type == "SHIPMENT_CREATED":
        if data.get("trigger") == "auto":
            return "Shipment Created", f"Shipment created automatically after payment with AWB: {data.get('awb_code') or 'N/A'}"
        return "Shipment Created", f"Shipment created with AWB: {data.get('awb_code') or 'N/A'}"
    if entry.type == "SHIPMENT_ERROR":
        return "Shipment Error", "Failed to create shipment - manual intervention required"
    return None


class TrackingService:
    """Tracking aggregator"""

    def __init__(self, repository: OrderRepositoryProtocol, activity: ActivityRepositoryProtocol):
        self.repository = repository
        self.activity = activity

    async def _collect(self, category: ActivityCategory, predicate) -> List[ActivityEntry]:
        # Log files are read off the event loop
        return await asyncio.to_thread(list, self.activity.query(category, predicate))

    async def _entries_for(self, category: ActivityCategory, order: Order) -> List[ActivityEntry]:
        keys = {order.id, order.gateway_order_id}
        return await self._collect(category, lambda e: e.data.get("order_id") in keys)

    async def get_order_tracking(self, order_id: str) -> OrderTracking:
        """
        Build the tracking view for one order

        Args:
            order_id: Local id or gateway order id

        Returns:
            Order summary, customer details and a timeline sorted by time
        """
        order = await self.repository.get_order(order_id)

        tracking = OrderTracking(
            order=OrderTrackingOrder(
                id=order.id,
                gateway_order_id=order.gateway_order_id,
                status=order.status,
                amount=order.amount,
                currency=order.currency,
                package_type=order.package_type,
                created_at=order.created_at,
                updated_at=order.updated_at,
            ),
            customer=order.customer,
        )
        timeline = [TimelineEntry(
            timestamp=order.created_at,
            status="Order Created",
            description="Order has been created and is awaiting payment",
            type="order",
        )]

        for entry in await self._entries_for(ActivityCategory.PAYMENT, order):
            step = _payment_step(entry)
            if step:
                timeline.append(TimelineEntry(timestamp=entry.timestamp, status=step[0], description=step[1], type="payment"))

        for entry in await self._entries_for(ActivityCategory.SHIPMENT, order):
            step = _shipment_step(entry)
            if step is None:
                continue
            if entry.type == "SHIPMENT_CREATED":
                tracking.awb_code = entry.data.get("awb_code")
                tracking.courier_name = entry.data.get("courier_name")
            timeline.append(TimelineEntry(timestamp=entry.timestamp, status=step[0], description=step[1], type="shipment"))

        # Stable sort keeps append order for equal timestamps
        timeline.sort(key=lambda t: t.timestamp)
        tracking.timeline = timeline

        if tracking.awb_code is None and order.shipment is not None:
            tracking.awb_code = order.shipment.awb_code
            tracking.courier_name = order.shipment.courier_name
        return tracking

    async def get_shipment_logs(self, awb_code: str) -> List[ActivityEntry]:
        """Stored shipment activity for an AWB number"""
        logs = await self._collect(
            ActivityCategory.SHIPMENT, lambda e: e.data.get("awb_code") == awb_code
        )
        if not logs:
            raise OrderNotFoundError("Shipment not found")
        return logs

    async def get_summary(self, recent_limit: int = 10) -> TrackingSummary:
        """Counts by status and package plus the most recent activity"""
        orders = await self.repository.list_orders()

        by_status: Dict[str, int] = {s.value: 0 for s in OrderStatus}
        by_package: Dict[str, int] = {p.value: 0 for p in PackageType}
        revenue = 0
        for order in orders:
            by_status[order.status.value] += 1
            by_package[order.package_type.value] += 1
            if order.status in (OrderStatus.PAID, OrderStatus.COMPLETED):
                revenue += order.amount

        recent_orders = sorted(orders, key=lambda o: o.created_at, reverse=True)[:recent_limit]
        recent_payments = sorted(
            await self._collect(ActivityCategory.PAYMENT, lambda e: e.type == "PAYMENT_CAPTURED"),
            key=lambda e: e.timestamp, reverse=True,
        )[:recent_limit]
        recent_shipments = sorted(
            await self._collect(ActivityCategory.SHIPMENT, lambda e: e.type == "SHIPMENT_CREATED"),
            key=lambda e: e.timestamp, reverse=True,
        )[:recent_limit]

        return TrackingSummary(
            total_orders=len(orders),
            orders_by_status=by_status,
            orders_by_package=by_package,
            total_revenue=revenue,
            recent_orders=recent_orders,
            recent_payments=recent_payments,
            recent_shipments=recent_shipments,
        )
