"""Order approval.

Approving an order releases it to the floor: the order moves PENDING ->
APPROVED and every item is queued for its paperwork to be printed.
"""

from flask import current_app
from sqlalchemy import update

from . import db
from .errors import InvalidOrderTransition, OrderNotFound
from .models import Order, utcnow
from .print_queue import PrintQueueManager
from .storage import unit_of_work
from .workflow import OrderStatus


class ApprovalService:
    def __init__(self, queue: PrintQueueManager):
        self.queue = queue

    def approve(self, order_id, actor_id=None) -> dict:
        order = db.session.get(Order, order_id)
        if order is None:
            raise OrderNotFound(order_id)

        with unit_of_work("approve_order"):
            res = db.session.execute(
                update(Order)
                .where(Order.id == order.id, Order.status == OrderStatus.PENDING)
                .values(status=OrderStatus.APPROVED, approved_at=utcnow())
                .execution_options(synchronize_session="evaluate")
            )
            if res.rowcount != 1:
                raise InvalidOrderTransition(order.id, order.status.value, OrderStatus.APPROVED.value)

        item_ids = [i.id for i in order.items]
        queued = self.queue.add_to_queue(item_ids, actor_id, skip_queued=True)

        current_app.logger.info("order %s approved by %s, %d item(s) queued", order.id, actor_id, len(queued))
        return {
            "order": order.to_dict(),
            "queued_entry_ids": [e.id for e in queued],
            "items": len(item_ids),
        }
