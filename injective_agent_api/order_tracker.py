"""
In-memory tracking of submitted orders per user.
"""
import asyncio
import logging
from decimal import Decimal
from typing import Dict, List, Optional

from .interfaces import Notifier
from .models import OrderSide, OrderStatus, TrackedOrder

logger = logging.getLogger(__name__)


class OrderTracker:
    def __init__(self, notifier: Optional[Notifier] = None):
        self.notifier = notifier
        self._orders: Dict[str, List[TrackedOrder]] = {}
        self._lock = asyncio.Lock()

    def set_notifier(self, notifier: Notifier):
        """Set notifier after initialization."""
        self.notifier = notifier

    async def track(
        self,
        user_id: str,
        order_id: str,
        ticker: str,
        side: OrderSide,
        quantity: Decimal,
        worst_price: Decimal,
    ) -> TrackedOrder:
        order = TrackedOrder(
            order_id=order_id,
            user_id=user_id,
            ticker=ticker,
            side=side,
            quantity=quantity,
            worst_price=worst_price,
        )
        async with self._lock:
            self._orders.setdefault(user_id, []).append(order)
        logger.info(f"Tracking order {order_id} for {user_id}: {side.value} {quantity} {ticker}")
        return order

    async def list_orders(self, user_id: str, status: Optional[OrderStatus] = None) -> List[TrackedOrder]:
        async with self._lock:
            orders = list(self._orders.get(user_id, []))
        if status is not None:
            orders = [o for o in orders if o.status is status]
        return orders

    async def update_status(self, order_id: str, status: OrderStatus) -> Optional[TrackedOrder]:
        """Set an order's status and tell its owner. Returns None for unknown ids."""
        found = None
        async with self._lock:
            for orders in self._orders.values():
                for order in orders:
                    if order.order_id == order_id:
                        order.status = status
                        found = order
                        break
                if found:
                    break

        if found is None:
            logger.warning(f"Status update for unknown order {order_id}")
            return None

        if self.notifier:
            try:
                await self.notifier.notify(found.user_id, f"Order {order_id} {status.value}")
            except Exception as e:
                logger.error(f"Failed to notify {found.user_id} about order {order_id}: {e}")
        return found
