"""
Exceptions raised by the production tracking core.

Hierarchy:
    FloorTrackError (base)
    ├── MalformedBarcode          - scan string could not be decoded
    ├── InvalidScanRequest        - request body missing required fields
    ├── UnknownScanner            - prefix not registered or inactive
    ├── DuplicateScannerPrefix    - prefix already registered
    ├── ScannerStationMismatch    - scanner used at the wrong kiosk
    ├── ItemNotFound / OrderNotFound / WorkerNotFound
    ├── OrderNotInProduction      - order not approved for the floor
    ├── InvalidTransition         - workflow refused the scan
    │   └── ConcurrentTransition  - another scan changed the item first
    ├── InvalidOrderTransition    - order status change refused
    ├── ItemNotEligible           - item cannot be queued for printing
    ├── AlreadyQueued / QueueEntryNotFound / AlreadyPrinted
    └── StorageUnavailable        - transient database failure, retryable

Validation and workflow errors are reported to the caller as-is and never
retried.  ``StorageUnavailable`` is the only error that is safe to retry.
"""

from typing import Any, Dict, Optional

from .workflow import status_display_name


class FloorTrackError(Exception):
    """Base exception for all tracking errors.

    ``status_code`` is the HTTP status the API renders, ``code`` a stable
    machine-readable identifier for the kiosk UI.
    """

    status_code = 400
    code = "error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


# =============================================================================
# SCAN INPUT
# =============================================================================

class MalformedBarcode(FloorTrackError):
    code = "malformed_barcode"

    def __init__(self, barcode: str, reason: str):
        super().__init__(f"Invalid barcode: {reason}", {"barcode": barcode})
        self.barcode = barcode
        self.reason = reason


class InvalidScanRequest(FloorTrackError):
    code = "invalid_request"


class UnknownScanner(FloorTrackError):
    status_code = 404
    code = "unknown_scanner"

    def __init__(self, prefix: str):
        super().__init__(
            f'Scanner with prefix "{prefix}" not found or not active',
            {"prefix": prefix, "resolution": "Register or re-activate the scanner"},
        )
        self.prefix = prefix


class DuplicateScannerPrefix(FloorTrackError):
    status_code = 409
    code = "duplicate_prefix"

    def __init__(self, prefix: str):
        super().__init__(f'Scanner prefix "{prefix}" is already registered', {"prefix": prefix})
        self.prefix = prefix


class ScannerStationMismatch(FloorTrackError):
    status_code = 409
    code = "scanner_station_mismatch"

    def __init__(self, prefix: str, home_station: str, station: str):
        super().__init__(
            f"Scanner {prefix} belongs to {home_station}, not {station}",
            {
                "prefix": prefix,
                "home_station": home_station,
                "station": station,
                "resolution": f"Use the {station} kiosk scanner",
            },
        )


# =============================================================================
# LOOKUPS
# =============================================================================

class ItemNotFound(FloorTrackError):
    status_code = 404
    code = "item_not_found"

    def __init__(self, item_ref: Any, order_number: Optional[str] = None):
        details = {"item_ref": item_ref}
        if order_number:
            details["order_number"] = order_number
        super().__init__(f"Order item not found: {item_ref}", details)


class OrderNotFound(FloorTrackError):
    status_code = 404
    code = "order_not_found"

    def __init__(self, order_id: Any):
        super().__init__(f"Order not found: {order_id}", {"order_id": order_id})


class WorkerNotFound(FloorTrackError):
    status_code = 404
    code = "worker_not_found"

    def __init__(self, worker_id: Any):
        super().__init__(f"Worker not found: {worker_id}", {"worker_id": worker_id})


# =============================================================================
# WORKFLOW
# =============================================================================

class OrderNotInProduction(FloorTrackError):
    status_code = 409
    code = "order_not_in_production"

    def __init__(self, order_id: Any, order_status: str):
        super().__init__(
            "Order is not approved for production",
            {"order_id": order_id, "order_status": order_status},
        )


class InvalidTransition(FloorTrackError):
    """The workflow refused the scan.

    ``details`` carries the item's current status (raw and display form),
    the station that scanned and the last station known to have scanned so
    the kiosk can explain what went wrong.
    """

    status_code = 409
    code = "invalid_transition"

    def __init__(
        self,
        item_id: Any,
        current_status: str,
        station: str,
        last_station: Optional[str] = None,
        message: Optional[str] = None,
    ):
        details = {
            "item_id": item_id,
            "current_status": current_status,
            "current_status_display": status_display_name(current_status),
            "station": station,
            "last_station": last_station,
        }
        super().__init__(
            message or f"{station} cannot process an item that is {status_display_name(current_status)}",
            details,
        )
        self.current_status = current_status
        self.station = station


class ConcurrentTransition(InvalidTransition):
    code = "concurrent_transition"


class InvalidOrderTransition(FloorTrackError):
    status_code = 409
    code = "invalid_order_transition"

    def __init__(self, order_id: Any, current_status: str, target_status: str):
        super().__init__(
            f"Order cannot move from {current_status} to {target_status}",
            {"order_id": order_id, "current_status": current_status, "target_status": target_status},
        )


# =============================================================================
# PRINT QUEUE
# =============================================================================

class ItemNotEligible(FloorTrackError):
    status_code = 409
    code = "item_not_eligible"

    def __init__(self, item_id: Any, order_status: str):
        super().__init__(
            "Item's order is not approved; it cannot be queued for printing",
            {"item_id": item_id, "order_status": order_status},
        )


class AlreadyQueued(FloorTrackError):
    status_code = 409
    code = "already_queued"

    def __init__(self, item_ids):
        item_ids = list(item_ids)
        super().__init__(
            f"{len(item_ids)} item(s) already waiting in the print queue",
            {"item_ids": item_ids},
        )
        self.item_ids = item_ids


class QueueEntryNotFound(FloorTrackError):
    status_code = 404
    code = "queue_entry_not_found"

    def __init__(self, entry_ids):
        entry_ids = list(entry_ids)
        super().__init__(
            "The requested entries are no longer in the print queue",
            {"entry_ids": entry_ids, "resolution": "Refresh the print queue"},
        )
        self.entry_ids = entry_ids


class AlreadyPrinted(FloorTrackError):
    status_code = 409
    code = "already_printed"

    def __init__(self, entry_ids):
        entry_ids = list(entry_ids)
        super().__init__(
            f"{len(entry_ids)} entry(ies) were already printed",
            {"entry_ids": entry_ids, "resolution": "Refresh the print queue"},
        )
        self.entry_ids = entry_ids


# =============================================================================
# STORAGE
# =============================================================================

class StorageUnavailable(FloorTrackError):
    status_code = 503
    code = "storage_unavailable"

    def __init__(self, operation: str, reason: str = ""):
        super().__init__(
            f"Database unavailable during {operation}",
            {"operation": operation, "reason": reason, "retryable": True},
        )
        self.operation = operation
