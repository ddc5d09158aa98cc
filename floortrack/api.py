from flask import Blueprint, Response, current_app, jsonify, request
import pandas as pd

from . import db
from .errors import FloorTrackError, InvalidScanRequest, ItemNotFound
from .labels import item_label_svg
from .models import OrderItem
from .scanning import parse_scan_request
from .services import get_services
from .workflow import parse_station

api = Blueprint("api", __name__)


@api.errorhandler(FloorTrackError)
def handle_floortrack_error(e):
    if e.status_code >= 500:
        current_app.logger.error("%s: %s", e.code, e)
    else:
        current_app.logger.info("%s: %s", e.code, e.message)
    return jsonify(e.to_dict()), e.status_code


def _actor_id(data):
    v = data.get("actor_id", data.get("worker_id"))
    if v is None:
        return None
    try:
        return int(v)
    except (TypeError, ValueError):
        raise InvalidScanRequest("actor_id must be an integer", {"actor_id": v})


def _get_item(item_id):
    item = db.session.get(OrderItem, item_id)
    if item is None:
        raise ItemNotFound(item_id)
    return item


@api.post("/scan")
def scan():
    data = request.get_json(silent=True) or {}
    result = get_services().scans.handle(parse_scan_request(data))
    resp = result.to_dict()
    resp["success"] = True
    return jsonify(resp)


@api.post("/scanner-lookup")
def scanner_lookup():
    data = request.get_json(silent=True) or {}
    prefix = (data.get("prefix") or "").strip()
    if not prefix:
        return jsonify({"success": False, "error": "prefix required"}), 400
    station = None
    if data.get("station"):
        station = parse_station(data["station"])
        if station is None:
            raise InvalidScanRequest(f"Unknown station: {data['station']}", {"station": data["station"]})
    actor = get_services().scanners.resolve(prefix, station)
    return jsonify({"success": True, "actor": actor.to_dict()})


@api.get("/items/<int:item_id>/active-log")
def active_log(item_id):
    item = _get_item(item_id)
    log = get_services().logs.open_log(item.id)
    return jsonify({
        "success": True,
        "item": item.to_dict(),
        "active_log": log.to_dict() if log else None,
    })


@api.get("/items/<int:item_id>/label.svg")
def item_label(item_id):
    item = _get_item(item_id)
    return Response(item_label_svg(item), mimetype="image/svg+xml")


@api.post("/orders/<int:order_id>/approve")
def approve_order(order_id):
    data = request.get_json(silent=True) or {}
    result = get_services().approvals.approve(order_id, _actor_id(data))
    result["success"] = True
    return jsonify(result)


# ----------------------------------------------------------------------
# Print queue
# ----------------------------------------------------------------------
@api.get("/print-queue")
def get_print_queue():
    include_printed = request.args.get("include_printed") in ("1", "true")
    entries = get_services().queue.get_queue(include_printed=include_printed)
    return jsonify({"success": True, "entries": [e.to_dict() for e in entries]})


@api.post("/print-queue")
def add_to_print_queue():
    data = request.get_json(silent=True) or {}
    if "item_ids" not in data:
        return jsonify({"success": False, "error": "item_ids required"}), 400
    entries = get_services().queue.add_to_queue(data["item_ids"], _actor_id(data))
    return jsonify({"success": True, "entries": [e.to_dict() for e in entries]}), 201


@api.delete("/print-queue")
def remove_from_print_queue():
    data = request.get_json(silent=True) or {}
    if "entry_ids" not in data:
        return jsonify({"success": False, "error": "entry_ids required"}), 400
    removed = get_services().queue.remove_from_queue(data["entry_ids"])
    return jsonify({"success": True, "removed": removed})


@api.get("/print-queue/status")
def print_queue_status():
    status = get_services().queue.get_queue_status()
    return jsonify({"success": True, "status": status.to_dict()})


@api.get("/print-queue/next-batch")
def next_batch():
    partial = request.args.get("partial") in ("1", "true")
    batch = get_services().queue.get_next_batch(allow_partial=partial)
    resp = batch.to_dict()
    resp["success"] = True
    return jsonify(resp)


@api.get("/print-queue/validate-batch")
def validate_batch():
    resp = get_services().queue.validate_batch()
    resp["success"] = True
    return jsonify(resp)


@api.post("/print-queue/mark-printed")
def mark_printed():
    data = request.get_json(silent=True) or {}
    if "entry_ids" not in data:
        return jsonify({"success": False, "error": "entry_ids required"}), 400
    entries = get_services().queue.mark_batch_printed(data["entry_ids"], _actor_id(data))
    return jsonify({"success": True, "printed": [e.id for e in entries]})


@api.post("/admin/print-queue/cleanup")
def cleanup_print_queue():
    data = request.get_json(silent=True) or {}
    days = data.get("retention_days")
    try:
        days = int(days) if days is not None else None
    except (TypeError, ValueError):
        return jsonify({"success": False, "error": "retention_days must be an integer"}), 400
    result = get_services().queue.cleanup(retention_days=days, dry_run=bool(data.get("dry_run")))
    resp = result.to_dict()
    resp["success"] = True
    return jsonify(resp)


# ----------------------------------------------------------------------
# Scanner provisioning
# ----------------------------------------------------------------------
@api.post("/admin/scanners")
def register_scanner():
    data = request.get_json(silent=True) or {}
    if not data.get("prefix") or data.get("worker_id") is None:
        return jsonify({"success": False, "error": "prefix and worker_id required"}), 400
    scanner = get_services().scanners.register(
        data["prefix"],
        data["worker_id"],
        station=data.get("station"),
        model=data.get("model"),
        serial_number=data.get("serial_number"),
    )
    return jsonify({"success": True, "scanner": scanner.to_dict()}), 201


@api.put("/admin/scanners/<int:scanner_id>")
def update_scanner(scanner_id):
    data = request.get_json(silent=True) or {}
    fields = {k: data[k] for k in ("worker_id", "station", "model", "serial_number", "is_active") if k in data}
    scanner = get_services().scanners.update(scanner_id, **fields)
    return jsonify({"success": True, "scanner": scanner.to_dict()})


@api.delete("/admin/scanners/<int:scanner_id>")
def deactivate_scanner(scanner_id):
    scanner = get_services().scanners.deactivate(scanner_id)
    return jsonify({"success": True, "scanner": scanner.to_dict()})


@api.post("/admin/scanners/upload")
def upload_scanners():
    if "file" not in request.files:
        return jsonify({"success": False, "error": "No file"}), 400
    f = request.files["file"]
    try:
        df = pd.read_excel(f) if f.filename.lower().endswith((".xlsx", ".xls")) else pd.read_csv(f, dtype=str)
    except Exception as e:
        current_app.logger.error("scanner upload failed: %s", e)
        return jsonify({"success": False, "error": str(e)}), 400
    summary = get_services().scanners.import_frame(df)
    summary["success"] = True
    return jsonify(summary)
