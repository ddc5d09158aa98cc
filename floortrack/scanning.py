"""Processing a scan from a kiosk.

A scan request arrives in one of two shapes and is parsed into a typed
request at the boundary:

* ``BarcodeScan`` - the raw string read by a handheld scanner
  (``PREFIX-ORDER-ITEM``); the prefix identifies scanner, worker and station.
* ``ItemScan`` - an item picked on the kiosk screen, with the station and
  optionally the scanner prefix or worker id.

Flow: resolve the actor, lock the item, compute the next status, update the
processing logs and item status, evaluate order rollups, commit.  The audit
row and customer notifications follow the commit and cannot fail the scan.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from flask import current_app
from sqlalchemy import select

from . import db
from .audit import AuditLog
from .barcode import DecodedBarcode, decode
from .errors import (
    ConcurrentTransition,
    InvalidScanRequest,
    InvalidTransition,
    ItemNotFound,
    OrderNotInProduction,
    WorkerNotFound,
)
from .models import Order, OrderItem, ProcessingLog, Worker, utcnow
from .processing_log import ProcessingLogManager
from .rollup import OrderRollupCoordinator
from .scanners import ResolvedActor, ScannerDirectory
from .storage import unit_of_work
from .workflow import (
    PRODUCTION_ORDER_STATUSES,
    ItemStatus,
    OrderStatus,
    Station,
    next_status,
    parse_station,
)


@dataclass(frozen=True)
class BarcodeScan:
    barcode: DecodedBarcode


@dataclass(frozen=True)
class ItemScan:
    item_ref: str
    station: Optional[Station] = None
    scanner_prefix: Optional[str] = None
    worker_id: Optional[int] = None


ScanRequest = Union[BarcodeScan, ItemScan]


def parse_scan_request(data: dict) -> ScanRequest:
    """Turn a request body into a ``BarcodeScan`` or ``ItemScan``."""
    data = data or {}
    barcode = (data.get("barcode") or "").strip()
    if barcode:
        return BarcodeScan(decode(barcode))

    item_ref = str(data.get("item_id") or data.get("item_ref") or "").strip()
    if not item_ref:
        raise InvalidScanRequest("barcode or item_id required")

    station = None
    if data.get("station"):
        station = parse_station(data["station"])
        if station is None:
            raise InvalidScanRequest(f"Unknown station: {data['station']}", {"station": data["station"]})

    prefix = (data.get("scanner_prefix") or "").strip().upper() or None
    if station is None and prefix is None:
        raise InvalidScanRequest("station or scanner_prefix required")

    worker_id = data.get("worker_id")
    if worker_id is not None:
        try:
            worker_id = int(worker_id)
        except (TypeError, ValueError):
            raise InvalidScanRequest("worker_id must be an integer", {"worker_id": worker_id})
    return ItemScan(item_ref=item_ref, station=station, scanner_prefix=prefix, worker_id=worker_id)


@dataclass
class ScanResult:
    item_id: int
    previous_status: ItemStatus
    new_status: ItemStatus
    actor: ResolvedActor
    order_status_changed: bool
    new_order_status: OrderStatus
    closed_log: Optional[ProcessingLog] = None
    opened_log: Optional[ProcessingLog] = None

    def to_dict(self):
        return {
            "item_id": self.item_id,
            "previous_status": self.previous_status.value,
            "new_status": self.new_status.value,
            "station": self.actor.station.value,
            "actor": self.actor.to_dict(),
            "order_status_changed": self.order_status_changed,
            "new_order_status": self.new_order_status.value,
            "closed_log": self.closed_log.to_dict() if self.closed_log else None,
            "opened_log": self.opened_log.to_dict() if self.opened_log else None,
        }


class ScanService:
    def __init__(
        self,
        scanners: ScannerDirectory,
        logs: ProcessingLogManager,
        rollup: OrderRollupCoordinator,
        audit: AuditLog,
    ):
        self.scanners = scanners
        self.logs = logs
        self.rollup = rollup
        self.audit = audit

    def handle(self, request: ScanRequest) -> ScanResult:
        if isinstance(request, BarcodeScan):
            code = request.barcode
            return self.process_scan(
                code.item_ref,
                station=code.station,
                scanner_prefix=code.prefix,
                order_number=code.order_number,
            )
        if isinstance(request, ItemScan):
            return self.process_scan(
                request.item_ref,
                station=request.station,
                scanner_prefix=request.scanner_prefix,
                worker_id=request.worker_id,
            )
        raise TypeError(f"unsupported scan request: {type(request).__name__}")

    def resolve_actor(self, station=None, scanner_prefix=None, worker_id=None) -> ResolvedActor:
        """Work out who performed the scan, and where.

        A scanner prefix wins over the kiosk session: the worker the scanner
        is assigned to is credited, even if someone else is logged in.
        """
        if scanner_prefix:
            return self.scanners.resolve(scanner_prefix, station)
        if station is None:
            raise InvalidScanRequest("station or scanner_prefix required")
        worker = None
        if worker_id is not None:
            worker = db.session.get(Worker, worker_id)
            if worker is None:
                raise WorkerNotFound(worker_id)
        return ResolvedActor(
            worker_id=worker.id if worker else None,
            worker_name=worker.name if worker else None,
            station=Station(station),
        )

    def process_scan(
        self,
        item_ref,
        station: Optional[Station] = None,
        scanner_prefix: Optional[str] = None,
        worker_id: Optional[int] = None,
        order_number: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ScanResult:
        actor = self.resolve_actor(station, scanner_prefix, worker_id)
        now = now or utcnow()

        # read state for the conflict report if a concurrent scan wins at commit
        read = {"item_id": item_ref, "status": None, "last": None}

        def conflict(e):
            return self._conflict(read["item_id"], read["status"], read["last"], actor)

        with unit_of_work("process_scan", on_conflict=conflict):
            item = self._find_item(item_ref, order_number)
            read["item_id"] = item.id
            order = item.order
            if order.status not in PRODUCTION_ORDER_STATUSES:
                raise OrderNotInProduction(order.id, order.status.value)

            current = item.status
            last = self.logs.last_station(item.id)
            read.update(status=current, last=last)
            target = next_status(current, actor.station, last)
            if target is None:
                raise InvalidTransition(
                    item.id, current.value, actor.station.value, last.value if last else None
                )

            record = self.logs.record_transition(item, current, target, actor, now)
            rollup = self.rollup.evaluate(item, target, now)
            new_order_status = order.status

        self.audit.record_status_change(
            item.id, current, target, actor.station, actor.worker_id,
            reason=f"Scanned at {actor.station.value}",
        )
        self.rollup.dispatch(rollup)

        current_app.logger.info(
            "item %s: %s -> %s at %s (worker %s)",
            item.id, current.value, target.value, actor.station.value, actor.worker_id,
        )
        return ScanResult(
            item_id=item.id,
            previous_status=current,
            new_status=target,
            actor=actor,
            order_status_changed=rollup.order_status_changed,
            new_order_status=new_order_status,
            closed_log=record.closed_log,
            opened_log=record.opened_log or record.completion_log,
        )

    @staticmethod
    def _find_item(item_ref, order_number=None) -> OrderItem:
        ref = str(item_ref).strip()
        stmt = select(OrderItem).with_for_update(of=OrderItem)
        if order_number:
            stmt = stmt.join(Order, Order.id == OrderItem.order_id).where(Order.order_number == order_number)

        item = db.session.execute(stmt.where(OrderItem.product_number == ref)).scalars().first()
        if item is None and ref.isdigit():
            item = db.session.execute(stmt.where(OrderItem.id == int(ref))).scalars().first()
        if item is None:
            raise ItemNotFound(ref, order_number)
        return item

    @staticmethod
    def _conflict(item_id, current: Optional[ItemStatus], last: Optional[Station], actor: ResolvedActor):
        # a concurrent scan opened a log for this item first
        return ConcurrentTransition(
            item_id,
            current.value if current else "unknown",
            actor.station.value,
            last.value if last else None,
            message="Item was updated by another scan; scan again",
        )
