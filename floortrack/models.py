"""Database models for the production floor.

Workers carry barcode scanners, orders contain items, and each item moves
through the stations while processing logs record how long every step
took.  Finished order paperwork waits in the shared print queue.

Statuses and stations are stored by enum *name* (``native_enum=False``) so the
same schema works on SQLite and PostgreSQL.  Timestamps are naive UTC.
"""

from datetime import datetime, timezone

from . import db
from .workflow import ItemStatus, OrderStatus, Station


def utcnow():
    # SQLite drops tzinfo on the way back; keep everything naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


def fmt_ts(v):
    return v.isoformat() if v else None


def _enum(enum_cls, length=32):
    return db.Enum(enum_cls, native_enum=False, length=length, validate_strings=True)


class Worker(db.Model):
    __tablename__ = "workers"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    token_id = db.Column(db.String(120), unique=True, nullable=False, index=True)
    department = db.Column(db.String(120))
    active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    scanners = db.relationship("BarcodeScanner", backref="worker", lazy=True)

    def to_dict(self):
        return {"id": self.id, "name": self.name, "token_id": self.token_id, "department": self.department}


class BarcodeScanner(db.Model):
    """A handheld scanner assigned to one worker at one home station.

    Scanners are provisioned by office staff.  A scanner without a station
    belongs to the Office.
    """

    __tablename__ = "barcode_scanners"
    id = db.Column(db.Integer, primary_key=True)
    prefix = db.Column(db.String(3), unique=True, nullable=False, index=True)
    worker_id = db.Column(db.Integer, db.ForeignKey("workers.id"), nullable=False)
    station = db.Column(_enum(Station), nullable=True)
    model = db.Column(db.String(120))
    serial_number = db.Column(db.String(120))
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    @property
    def home_station(self) -> Station:
        return self.station or Station.OFFICE

    def to_dict(self):
        return {
            "id": self.id,
            "prefix": self.prefix,
            "worker": self.worker.to_dict() if self.worker else None,
            "station": self.home_station.value,
            "model": self.model,
            "serial_number": self.serial_number,
            "is_active": bool(self.is_active),
        }


class Order(db.Model):
    __tablename__ = "orders"
    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(120), unique=True, nullable=False, index=True)
    customer_name = db.Column(db.String(255))
    contact_email = db.Column(db.String(255))
    priority = db.Column(db.String(20), nullable=False, default="NORMAL")
    status = db.Column(_enum(OrderStatus), nullable=False, default=OrderStatus.PENDING)
    created_at = db.Column(db.DateTime, default=utcnow)
    approved_at = db.Column(db.DateTime, nullable=True)
    ready_to_ship_at = db.Column(db.DateTime, nullable=True)

    items = db.relationship("OrderItem", backref="order", lazy=True, order_by="OrderItem.id")

    def to_dict(self):
        return {
            "id": self.id,
            "order_number": self.order_number,
            "customer_name": self.customer_name,
            "priority": self.priority,
            "status": self.status.value,
            "approved_at": fmt_ts(self.approved_at),
            "ready_to_ship_at": fmt_ts(self.ready_to_ship_at),
        }


class OrderItem(db.Model):
    """A physical unit moving through production (one line of an order)."""

    __tablename__ = "order_items"
    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_number = db.Column(db.String(120), unique=True, nullable=True)
    description = db.Column(db.String(255))
    quantity = db.Column(db.Integer, nullable=False, default=1)
    status = db.Column(_enum(ItemStatus), nullable=False, default=ItemStatus.NOT_STARTED, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    @property
    def item_ref(self) -> str:
        return self.product_number or str(self.id)

    def to_dict(self):
        return {
            "id": self.id,
            "order_id": self.order_id,
            "item_ref": self.item_ref,
            "description": self.description,
            "quantity": self.quantity,
            "status": self.status.value,
        }


class ProcessingLog(db.Model):
    """Time spent on one item at one station.

    A log is opened when a scan hands the item to the next step and closed by
    the following scan.  At most one log per item is open at any time; the
    partial unique index enforces it.
    """

    __tablename__ = "processing_logs"
    id = db.Column(db.Integer, primary_key=True)
    order_item_id = db.Column(db.Integer, db.ForeignKey("order_items.id"), nullable=False)
    station = db.Column(_enum(Station), nullable=False)
    worker_id = db.Column(db.Integer, db.ForeignKey("workers.id"), nullable=True)
    start_time = db.Column(db.DateTime, nullable=False, default=utcnow)
    end_time = db.Column(db.DateTime, nullable=True)
    duration_seconds = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.Text)

    __table_args__ = (
        db.Index("ix_processing_logs_item_start", "order_item_id", "start_time"),
        db.Index(
            "uq_processing_logs_open_item",
            "order_item_id",
            unique=True,
            sqlite_where=db.text("end_time IS NULL"),
            postgresql_where=db.text("end_time IS NULL"),
        ),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "order_item_id": self.order_item_id,
            "station": self.station.value,
            "worker_id": self.worker_id,
            "start_time": fmt_ts(self.start_time),
            "end_time": fmt_ts(self.end_time),
            "duration_seconds": self.duration_seconds,
            "notes": self.notes,
        }


class ItemStatusLog(db.Model):
    __tablename__ = "item_status_logs"
    id = db.Column(db.Integer, primary_key=True)
    order_item_id = db.Column(db.Integer, db.ForeignKey("order_items.id"), nullable=False, index=True)
    from_status = db.Column(db.String(32))
    to_status = db.Column(db.String(32), nullable=False)
    station = db.Column(db.String(32))
    worker_id = db.Column(db.Integer, nullable=True)
    reason = db.Column(db.String(255))
    timestamp = db.Column(db.DateTime, default=utcnow)


class PrintQueueEntry(db.Model):
    """Order paperwork waiting to be printed.

    Printed entries stay in the table (flagged) until cleanup removes them, so
    uniqueness only applies to unprinted rows.
    """

    __tablename__ = "print_queue"
    id = db.Column(db.Integer, primary_key=True)
    order_item_id = db.Column(db.Integer, db.ForeignKey("order_items.id"), nullable=False)
    added_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    added_by = db.Column(db.Integer, nullable=True)
    is_printed = db.Column(db.Boolean, nullable=False, default=False)
    printed_at = db.Column(db.DateTime, nullable=True)
    printed_by = db.Column(db.Integer, nullable=True)

    order_item = db.relationship("OrderItem")

    __table_args__ = (
        db.Index("ix_print_queue_printed_added", "is_printed", "added_at"),
        db.Index(
            "uq_print_queue_unprinted_item",
            "order_item_id",
            unique=True,
            sqlite_where=db.text("is_printed = 0"),
            postgresql_where=db.text("is_printed = false"),
        ),
    )

    def to_dict(self):
        item = self.order_item
        return {
            "id": self.id,
            "order_item_id": self.order_item_id,
            "order_number": item.order.order_number if item is not None else None,
            "added_at": fmt_ts(self.added_at),
            "added_by": self.added_by,
            "is_printed": bool(self.is_printed),
            "printed_at": fmt_ts(self.printed_at),
            "printed_by": self.printed_by,
        }
