"""Best-effort audit trail of item status changes.

Audit rows are written after the scan has committed, in their own
transaction.  A failed write is logged and dropped; it never fails the scan.
"""

from flask import current_app

from . import db
from .models import ItemStatusLog, utcnow


class AuditLog:
    def record_status_change(self, item_id, from_status, to_status, station=None, worker_id=None, reason=None):
        try:
            self._write(ItemStatusLog(
                order_item_id=item_id,
                from_status=getattr(from_status, "value", from_status),
                to_status=getattr(to_status, "value", to_status),
                station=getattr(station, "value", station),
                worker_id=worker_id,
                reason=reason,
                timestamp=utcnow(),
            ))
            return True
        except Exception as e:
            db.session.rollback()
            current_app.logger.warning("audit log write failed for item %s: %s", item_id, e)
            return False

    def _write(self, row: ItemStatusLog) -> None:
        db.session.add(row)
        db.session.commit()
