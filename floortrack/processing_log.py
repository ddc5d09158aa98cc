"""Time tracking for items on the floor.

Workers scan when they *finish* a step; there is no start button.  So each
successful scan closes the item's open log (the previous step's work ends
now) and opens a new one at the scanning station (the next unit of work
begins now).  When the item reaches READY no log is left open; a
zero-duration completion entry is written instead so reports see the
final step.

All writes happen in the caller's transaction.  The status write is a
compare-and-set on the status that was read, so two scans racing on the
same item cannot both advance it.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update

from . import db
from .errors import ConcurrentTransition
from .models import OrderItem, ProcessingLog, utcnow
from .scanners import ResolvedActor
from .workflow import ItemStatus, Station


@dataclass
class TransitionRecord:
    closed_log: Optional[ProcessingLog]
    opened_log: Optional[ProcessingLog]
    completion_log: Optional[ProcessingLog] = None


def duration_seconds(start: datetime, end: datetime) -> int:
    # clock skew between app servers can make end < start
    return max(0, int((end - start).total_seconds()))


class ProcessingLogManager:
    def open_log(self, item_id) -> Optional[ProcessingLog]:
        return db.session.execute(
            select(ProcessingLog).where(
                ProcessingLog.order_item_id == item_id, ProcessingLog.end_time.is_(None)
            )
        ).scalar_one_or_none()

    def last_station(self, item_id) -> Optional[Station]:
        """Station of the most recent log for the item, or None for legacy items."""
        return db.session.execute(
            select(ProcessingLog.station)
            .where(ProcessingLog.order_item_id == item_id)
            .order_by(ProcessingLog.start_time.desc(), ProcessingLog.id.desc())
            .limit(1)
        ).scalar_one_or_none()

    def history(self, item_id):
        return db.session.execute(
            select(ProcessingLog)
            .where(ProcessingLog.order_item_id == item_id)
            .order_by(ProcessingLog.start_time, ProcessingLog.id)
        ).scalars().all()

    def close(self, log: ProcessingLog, now: datetime, closed_by: Station) -> ProcessingLog:
        log.end_time = now
        log.duration_seconds = duration_seconds(log.start_time, now)
        note = f"Completed - next scan at {closed_by.value}"
        log.notes = f"{log.notes} - {note}" if log.notes else note
        return log

    def record_transition(
        self,
        item: OrderItem,
        from_status: ItemStatus,
        to_status: ItemStatus,
        actor: ResolvedActor,
        now: Optional[datetime] = None,
    ) -> TransitionRecord:
        now = now or utcnow()

        closed = self.open_log(item.id)
        if closed is not None:
            self.close(closed, now, actor.station)
            # the open-log unique index must see this close before the next insert
            db.session.flush()

        result = db.session.execute(
            update(OrderItem)
            .where(OrderItem.id == item.id, OrderItem.status == from_status)
            .values(status=to_status, updated_at=now)
            .execution_options(synchronize_session="evaluate")
        )
        if result.rowcount != 1:
            raise ConcurrentTransition(
                item.id,
                from_status.value,
                actor.station.value,
                message="Item was updated by another scan; scan again",
            )

        if to_status is ItemStatus.READY:
            completion = ProcessingLog(
                order_item_id=item.id,
                station=actor.station,
                worker_id=actor.worker_id,
                start_time=now,
                end_time=now,
                duration_seconds=0,
                notes=f"Completed - item ready at {actor.station.value}",
            )
            db.session.add(completion)
            db.session.flush()
            return TransitionRecord(closed_log=closed, opened_log=None, completion_log=completion)

        opened = ProcessingLog(
            order_item_id=item.id,
            station=actor.station,
            worker_id=actor.worker_id,
            start_time=now,
            notes=f"Started processing at {actor.station.value}",
        )
        db.session.add(opened)
        db.session.flush()
        return TransitionRecord(closed_log=closed, opened_log=opened)
