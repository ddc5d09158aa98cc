import threading

import pytest

from floortrack import db
from floortrack.audit import AuditLog
from floortrack.errors import (
    ConcurrentTransition,
    InvalidScanRequest,
    InvalidTransition,
    ItemNotFound,
    MalformedBarcode,
    OrderNotInProduction,
    ScannerStationMismatch,
    UnknownScanner,
    WorkerNotFound,
)
from floortrack.models import ItemStatusLog, Order, OrderItem, ProcessingLog
from floortrack.notifications import ITEM_READY, ORDER_PROCESSING, ORDER_READY_TO_SHIP
from floortrack.scanning import BarcodeScan, ItemScan, parse_scan_request
from floortrack.services import Services
from floortrack.workflow import ItemStatus, OrderStatus, Station

from conftest import RecordingNotifier

# prefixes seeded by ``seed_sample_data``
OFFICE, CUTTING, SEWING, FOAM, STUFFING, PACKAGING = "O1A", "C2A", "S3A", "F4A", "T5A", "P6A"


def open_logs(item_id):
    return ProcessingLog.query.filter_by(order_item_id=item_id, end_time=None).count()


def test_full_item_lifecycle(services, make_order, notifier):
    order_id, (item_id,) = make_order(1)
    scans = services.scans

    r = scans.process_scan(item_id, scanner_prefix=OFFICE)
    assert r.new_status is ItemStatus.CUTTING
    assert r.order_status_changed and r.new_order_status is OrderStatus.PROCESSING
    assert r.closed_log is None and r.opened_log.station is Station.OFFICE

    r = scans.process_scan(item_id, scanner_prefix=CUTTING)
    assert r.new_status is ItemStatus.SEWING
    assert not r.order_status_changed
    assert r.closed_log.end_time is not None

    assert scans.process_scan(item_id, scanner_prefix=SEWING).new_status is ItemStatus.FOAM_CUTTING
    # foam cutting missed its scan; stuffing skips it forward
    assert scans.process_scan(item_id, scanner_prefix=STUFFING).new_status is ItemStatus.PACKAGING
    assert scans.process_scan(item_id, scanner_prefix=PACKAGING).new_status is ItemStatus.FINISHED

    r = scans.process_scan(item_id, scanner_prefix=OFFICE)
    assert r.new_status is ItemStatus.READY
    assert r.order_status_changed and r.new_order_status is OrderStatus.READY_TO_SHIP

    order = db.session.get(Order, order_id)
    assert order.status is OrderStatus.READY_TO_SHIP
    assert order.ready_to_ship_at is not None
    assert open_logs(item_id) == 0

    history = services.logs.history(item_id)
    assert [h.station for h in history] == [
        Station.OFFICE, Station.CUTTING, Station.SEWING, Station.STUFFING, Station.PACKAGING, Station.OFFICE,
    ]
    completion = history[-1]
    assert completion.duration_seconds == 0 and completion.start_time == completion.end_time

    assert notifier.kinds == [ORDER_PROCESSING, ITEM_READY, ORDER_READY_TO_SHIP]
    assert ItemStatusLog.query.filter_by(order_item_id=item_id).count() == 6


def test_order_waits_for_every_item(services, make_order):
    order_id, (a, b) = make_order(2)
    scans = services.scans
    for item in (a, b):
        scans.process_scan(item, scanner_prefix=OFFICE)
        scans.process_scan(item, scanner_prefix=CUTTING)

    r = scans.process_scan(a, scanner_prefix=OFFICE)
    assert r.new_status is ItemStatus.READY
    assert not r.order_status_changed
    assert db.session.get(Order, order_id).status is OrderStatus.PROCESSING

    r = scans.process_scan(b, scanner_prefix=OFFICE)
    assert r.order_status_changed
    assert db.session.get(Order, order_id).status is OrderStatus.READY_TO_SHIP


def test_second_item_cutting_does_not_flip_again(services, make_order, notifier):
    _, (a, b) = make_order(2)
    services.scans.process_scan(a, scanner_prefix=OFFICE)
    r = services.scans.process_scan(b, scanner_prefix=OFFICE)
    assert not r.order_status_changed
    assert notifier.kinds.count(ORDER_PROCESSING) == 1


def test_not_started_rejects_other_stations(services, make_order):
    _, (item_id,) = make_order(1)
    with pytest.raises(InvalidTransition) as e:
        services.scans.process_scan(item_id, scanner_prefix=CUTTING)
    assert e.value.details["current_status"] == "NOT_STARTED"
    assert e.value.details["current_status_display"] == "Not Started Production"
    assert db.session.get(OrderItem, item_id).status is ItemStatus.NOT_STARTED
    assert open_logs(item_id) == 0


def test_office_double_scan_rejected(services, make_order):
    _, (item_id,) = make_order(1)
    services.scans.process_scan(item_id, scanner_prefix=OFFICE)
    with pytest.raises(InvalidTransition) as e:
        services.scans.process_scan(item_id, scanner_prefix=OFFICE)
    assert e.value.details["last_station"] == "Office"
    assert db.session.get(OrderItem, item_id).status is ItemStatus.CUTTING
    assert open_logs(item_id) == 1


def test_legacy_item_without_history(services, make_order):
    _, (a, b) = make_order(2, status=OrderStatus.PROCESSING)
    db.session.get(OrderItem, a).status = ItemStatus.CUTTING
    db.session.get(OrderItem, b).status = ItemStatus.SEWING
    db.session.commit()

    with pytest.raises(InvalidTransition):
        services.scans.process_scan(a, scanner_prefix=OFFICE)
    assert services.scans.process_scan(b, scanner_prefix=OFFICE).new_status is ItemStatus.READY


def test_backward_scan_rejected(services, make_order):
    _, (item_id,) = make_order(1)
    services.scans.process_scan(item_id, scanner_prefix=OFFICE)
    services.scans.process_scan(item_id, scanner_prefix=PACKAGING)
    with pytest.raises(InvalidTransition):
        services.scans.process_scan(item_id, scanner_prefix=SEWING)
    assert db.session.get(OrderItem, item_id).status is ItemStatus.FINISHED


def test_pending_order_not_scannable(services, make_order):
    _, (item_id,) = make_order(1, status=OrderStatus.PENDING)
    with pytest.raises(OrderNotInProduction):
        services.scans.process_scan(item_id, scanner_prefix=OFFICE)


def test_unknown_and_inactive_scanner(services, make_order):
    _, (item_id,) = make_order(1)
    with pytest.raises(UnknownScanner):
        services.scans.process_scan(item_id, scanner_prefix="O9Z")
    scanner = services.scanners.lookup(OFFICE)
    services.scanners.deactivate(scanner.id)
    with pytest.raises(UnknownScanner):
        services.scans.process_scan(item_id, scanner_prefix=OFFICE)


def test_scanner_station_mismatch(services, make_order):
    _, (item_id,) = make_order(1)
    with pytest.raises(ScannerStationMismatch) as e:
        services.scans.process_scan(item_id, station=Station.CUTTING, scanner_prefix=OFFICE)
    assert e.value.details["home_station"] == "Office"


def test_scanner_worker_wins_over_session(services, make_order, worker_ids):
    _, (item_id,) = make_order(1)
    r = services.scans.process_scan(item_id, scanner_prefix=OFFICE, worker_id=worker_ids["AS003"])
    assert r.actor.worker_id == worker_ids["RK001"]
    assert r.opened_log.worker_id == worker_ids["RK001"]


def test_station_scan_without_scanner(services, make_order, worker_ids):
    _, (item_id,) = make_order(1)
    r = services.scans.process_scan(item_id, station=Station.OFFICE, worker_id=worker_ids["PS002"])
    assert r.actor.worker_name == "Priya Sharma" and not r.actor.via_scanner
    with pytest.raises(WorkerNotFound):
        services.scans.process_scan(item_id, station=Station.CUTTING, worker_id=999)


def test_barcode_scan(services, make_order):
    order_id, (item_id,) = make_order(1)
    order = db.session.get(Order, order_id)
    r = services.scans.handle(parse_scan_request({"barcode": f"O1A-{order.order_number}-{item_id}"}))
    assert r.new_status is ItemStatus.CUTTING

    with pytest.raises(ItemNotFound):
        services.scans.handle(parse_scan_request({"barcode": f"C2A-OTHER-{item_id}"}))


def test_product_number_lookup(services, ctx):
    order = Order.query.filter_by(order_number="SO1001").one()
    order.status = OrderStatus.APPROVED
    db.session.commit()
    r = services.scans.handle(parse_scan_request({"barcode": "O1A-SO1001-SO100102"}))
    assert r.item_id == order.items[1].id


def test_parse_scan_request():
    req = parse_scan_request({"item_id": 7, "station": "foam cutting", "worker_id": "3"})
    assert req == ItemScan("7", Station.FOAM_CUTTING, None, 3)
    assert isinstance(parse_scan_request({"barcode": " S3A-1-2 "}), BarcodeScan)
    assert parse_scan_request({"item_id": 7, "scanner_prefix": "s3a"}).scanner_prefix == "S3A"

    with pytest.raises(MalformedBarcode):
        parse_scan_request({"barcode": "nope"})
    with pytest.raises(InvalidScanRequest):
        parse_scan_request({})
    with pytest.raises(InvalidScanRequest):
        parse_scan_request({"item_id": 1})
    with pytest.raises(InvalidScanRequest):
        parse_scan_request({"item_id": 1, "station": "Laundry"})
    with pytest.raises(InvalidScanRequest):
        parse_scan_request({"item_id": 1, "station": "Office", "worker_id": "abc"})


class BrokenAudit(AuditLog):
    def _write(self, row):
        raise RuntimeError("audit table locked")


def test_audit_and_notification_failures_do_not_fail_scan(app, ctx, make_order):
    app.extensions["floortrack"] = Services.from_app(app, notifier=RecordingNotifier(fail=True), audit=BrokenAudit())
    _, (item_id,) = make_order(1)
    services = app.extensions["floortrack"]
    r = services.scans.process_scan(item_id, scanner_prefix=OFFICE)
    assert r.new_status is ItemStatus.CUTTING
    assert db.session.get(OrderItem, item_id).status is ItemStatus.CUTTING
    assert ItemStatusLog.query.count() == 0


def test_concurrent_scans_of_same_item(file_app):
    with file_app.app_context():
        order = Order(order_number="RACE", status=OrderStatus.PROCESSING)
        db.session.add(order); db.session.flush()
        item = OrderItem(order_id=order.id, status=ItemStatus.CUTTING)
        db.session.add(item); db.session.commit()
        item_id = item.id

    results, errors = [], []
    barrier = threading.Barrier(2)

    def worker():
        with file_app.app_context():
            barrier.wait()
            try:
                results.append(file_app.extensions["floortrack"].scans.process_scan(item_id, scanner_prefix=CUTTING))
            except InvalidTransition as e:
                errors.append(e)

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(results) == 1 and len(errors) == 1
    with file_app.app_context():
        assert db.session.get(OrderItem, item_id).status is ItemStatus.SEWING
        assert ProcessingLog.query.filter_by(order_item_id=item_id, end_time=None).count() == 1


def test_open_log_conflict_reports_read_state(services, make_order, monkeypatch):
    _, (item_id,) = make_order(1)
    services.scans.process_scan(item_id, scanner_prefix=OFFICE)

    # a racing scan committed its open log after this one looked for it
    monkeypatch.setattr(services.logs, "open_log", lambda item_id: None)
    with pytest.raises(ConcurrentTransition) as e:
        services.scans.process_scan(item_id, scanner_prefix=CUTTING)

    assert e.value.details["item_id"] == item_id
    assert e.value.details["current_status"] == "CUTTING"
    assert e.value.details["station"] == "Cutting"
    assert e.value.details["last_station"] == "Office"
    assert db.session.get(OrderItem, item_id).status is ItemStatus.CUTTING
    assert open_logs(item_id) == 1
