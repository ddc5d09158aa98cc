"""Order-level status derived from item transitions.

Two triggers are evaluated after every item transition:

* production start - the first item entering CUTTING moves an APPROVED order
  to PROCESSING;
* completion - when an item reaches READY and every item of the order is
  READY, the order moves to READY_TO_SHIP.

Order writes are conditional on the status they move away from, so two
items finishing at the same moment settle on the same result; the second
write simply matches no row.  Notifications are collected during the
transaction and sent only after it commits.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, select, update

from . import db
from .models import Order, OrderItem
from .notifications import (
    ITEM_READY,
    ORDER_PROCESSING,
    ORDER_READY_TO_SHIP,
    Notification,
    Notifier,
    dispatch,
)
from .workflow import ItemStatus, OrderStatus


@dataclass
class RollupResult:
    order_status_changed: bool = False
    new_order_status: Optional[OrderStatus] = None
    notifications: List[Notification] = field(default_factory=list)


class OrderRollupCoordinator:
    def __init__(self, notifier: Notifier):
        self.notifier = notifier

    def evaluate(self, item: OrderItem, new_status: ItemStatus, now: datetime) -> RollupResult:
        order = item.order
        result = RollupResult()

        if new_status is ItemStatus.CUTTING:
            if self._move(order, (OrderStatus.APPROVED,), OrderStatus.PROCESSING):
                result.order_status_changed = True
                result.new_order_status = OrderStatus.PROCESSING
                result.notifications.append(self._order_notification(order, ORDER_PROCESSING))

        if new_status is ItemStatus.READY:
            result.notifications.append(Notification(
                ITEM_READY,
                order.contact_email,
                {
                    "order_number": order.order_number,
                    "customer_name": order.customer_name or "Valued Customer",
                    "item": item.description or "Item",
                    "quantity": item.quantity,
                },
            ))
            if self.all_items_ready(order.id):
                moved = self._move(
                    order,
                    (OrderStatus.APPROVED, OrderStatus.PROCESSING),
                    OrderStatus.READY_TO_SHIP,
                    ready_to_ship_at=now,
                )
                if moved:
                    result.order_status_changed = True
                    result.new_order_status = OrderStatus.READY_TO_SHIP
                    result.notifications.append(self._order_notification(order, ORDER_READY_TO_SHIP))

        return result

    def all_items_ready(self, order_id) -> bool:
        remaining = db.session.execute(
            select(func.count())
            .select_from(OrderItem)
            .where(OrderItem.order_id == order_id, OrderItem.status != ItemStatus.READY)
        ).scalar_one()
        return remaining == 0

    def dispatch(self, result: RollupResult) -> int:
        return dispatch(self.notifier, result.notifications)

    @staticmethod
    def _move(order: Order, from_statuses, to_status: OrderStatus, **values) -> bool:
        res = db.session.execute(
            update(Order)
            .where(Order.id == order.id, Order.status.in_(from_statuses))
            .values(status=to_status, **values)
            .execution_options(synchronize_session="evaluate")
        )
        return res.rowcount == 1

    @staticmethod
    def _order_notification(order: Order, kind: str) -> Notification:
        return Notification(kind, order.contact_email, {
            "order_number": order.order_number,
            "customer_name": order.customer_name or "Valued Customer",
        })
