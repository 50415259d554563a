"""
Order Repository

Data access layer for orders backed by a single JSON array file.

Orders are held in a key-indexed map and flushed with an atomic
write-then-rename, so an interrupted write leaves the previous file intact.
Mutations of one order are serialised by a per-order lock; different orders
update concurrently.
"""

import asyncio
import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import ValidationError

from .models import Order
from .protocols import (
    DuplicateOrderError, OrderMutator, OrderNotFoundError, PersistenceError,
)

logger = logging.getLogger(__name__)


def write_json_atomic(path: Path, data) -> None:
    """Write JSON to a temp file in the same directory, then rename over path"""
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2, ensure_ascii=False)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def read_json_array(path: Path) -> list:
    """Read a JSON array file; a missing file is an empty array"""
    if not path.exists():
        return []
    with open(path, "r", encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, list):
        raise ValueError(f"{path} does not contain a JSON array")
    return data


class OrderRepository:
    """
    Repository for order data operations

    Implements OrderRepositoryProtocol on top of orders.json.
    """

    def __init__(self, data_dir: str, filename: str = "orders.json"):
        self.path = Path(data_dir) / filename
        self.path.parent.mkdir(parents=True, exist_ok=True)

        self._orders: Dict[str, Order] = {}
        self._gateway_index: Dict[str, str] = {}  # gateway_order_id -> id
        self._locks: Dict[str, asyncio.Lock] = {}
        self._flush_lock = asyncio.Lock()

        self._load()
        logger.info(f"OrderRepository initialized with {len(self._orders)} orders from {self.path}")

    def _load(self) -> None:
        try:
            records = read_json_array(self.path)
        except (OSError, ValueError) as e:
            raise PersistenceError("Failed to read order store", details=str(e)) from e

        for record in records:
            try:
                order = Order.model_validate(record)
            except ValidationError as e:
                logger.error(f"Skipping unreadable order record {record.get('id')}: {e}")
                continue
            self._index(order)

        if not self.path.exists():
            write_json_atomic(self.path, [])

    def _index(self, order: Order) -> None:
        self._orders[order.id] = order
        self._gateway_index[order.gateway_order_id] = order.id

    def _resolve(self, order_id: str) -> Optional[str]:
        if order_id in self._orders:
            return order_id
        return self._gateway_index.get(order_id)

    def _lock_for(self, order_id: str) -> asyncio.Lock:
        lock = self._locks.get(order_id)
        if lock is None:
            lock = self._locks[order_id] = asyncio.Lock()
        return lock

    async def _flush(self) -> None:
        async with self._flush_lock:
            records = [o.model_dump(mode="json") for o in self._orders.values()]
            try:
                await asyncio.to_thread(write_json_atomic, self.path, records)
            except OSError as e:
                logger.error(f"Error writing order store {self.path}: {e}")
                raise PersistenceError("Failed to write order store", details=str(e)) from e

    async def create_order(self, order: Order) -> Order:
        """Store a new order and persist it before returning"""
        async with self._lock_for(order.id):
            if order.id in self._orders or order.gateway_order_id in self._gateway_index:
                raise DuplicateOrderError(f"Order {order.id} already exists")

            self._index(order)
            try:
                await self._flush()
            except PersistenceError:
                self._orders.pop(order.id, None)
                self._gateway_index.pop(order.gateway_order_id, None)
                raise

        logger.info(f"Order stored: {order.id} (gateway {order.gateway_order_id})")
        return order

    async def get_order(self, order_id: str) -> Order:
        """Get order by local id or gateway order id"""
        key = self._resolve(order_id)
        if key is None:
            raise OrderNotFoundError(f"Order not found: {order_id}")
        return self._orders[key]

    async def update_order(self, order_id: str, mutator: OrderMutator) -> Order:
        """
        Apply a field patch to one order

        The mutator sees the current record under the order's lock, so a
        decision taken inside it cannot race with another update of the same
        order.
        """
        key = self._resolve(order_id)
        if key is None:
            raise OrderNotFoundError(f"Order not found: {order_id}")

        async with self._lock_for(key):
            current = self._orders[key]
            patch = mutator(current)
            if not patch:
                return current

            patch = dict(patch)
            for immutable in ("id", "gateway_order_id", "created_at"):
                patch.pop(immutable, None)
            patch["updated_at"] = datetime.now(timezone.utc)

            updated = current.model_copy(update=patch)
            self._orders[key] = updated
            try:
                await self._flush()
            except PersistenceError:
                self._orders[key] = current
                raise
            return updated

    async def list_orders(self) -> List[Order]:
        """All orders in insertion order"""
        return list(self._orders.values())
