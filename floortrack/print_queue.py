"""Shared print queue for order paperwork.

Approved orders send their items here; office staff print them in batches
of ``PRINT_BATCH_SIZE`` sheets (FIFO by time added).  The queue is one
list seen identically by every user.

Correctness rests on the database, not on check-then-act:

* a partial unique index allows one unprinted entry per item, so of N
  concurrent adds for the same item exactly one succeeds and the others
  get ``AlreadyQueued``;
* marking a batch printed is a single conditional UPDATE whose row count
  must equal the batch size, otherwise the transaction is rolled back and
  nothing in the batch changes.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from flask import current_app
from sqlalchemy import delete, func, select, update

from . import db
from .errors import (
    AlreadyPrinted,
    AlreadyQueued,
    InvalidScanRequest,
    ItemNotEligible,
    ItemNotFound,
    QueueEntryNotFound,
)
from .models import OrderItem, PrintQueueEntry, fmt_ts, utcnow
from .storage import unit_of_work
from .workflow import PRINTABLE_ORDER_STATUSES


class BatchDecision(str, enum.Enum):
    FULL = "full"
    PARTIAL = "partial"
    EMPTY = "empty"
    OVERSIZED = "oversized"


@dataclass(frozen=True)
class BatchPolicy:
    """How the UI should treat a batch of ``size`` sheets."""

    decision: BatchDecision
    size: int
    standard_size: int
    requires_confirmation: bool
    message: Optional[str] = None

    def recommendations(self) -> List[str]:
        if self.decision is BatchDecision.EMPTY:
            return [
                "No items in queue - approve orders to add items",
                "Check that orders have been properly approved",
            ]
        if self.decision is BatchDecision.PARTIAL:
            return [
                f"Wait for {self.standard_size - self.size} more items for optimal printing",
                "Partial batches may result in paper waste",
                "You can proceed if urgent printing is needed",
            ]
        if self.decision is BatchDecision.FULL:
            return ["Perfect batch size for optimal paper usage", "Ready to print without warnings"]
        return ["Batch size exceeds standard - verify the batch manually before printing"]

    def to_dict(self):
        return {
            "decision": self.decision.value,
            "batch_size": self.size,
            "standard_batch_size": self.standard_size,
            "requires_confirmation": self.requires_confirmation,
            "can_print_without_warning": self.decision is BatchDecision.FULL,
            "message": self.message,
            "recommendations": self.recommendations(),
        }


def evaluate_batch_size(size: int, standard_size: int) -> BatchPolicy:
    if size <= 0:
        return BatchPolicy(
            BatchDecision.EMPTY, 0, standard_size, False,
            "No items available for printing. Please approve orders to add items to the queue.",
        )
    if size < standard_size:
        return BatchPolicy(
            BatchDecision.PARTIAL, size, standard_size, True,
            f"Only {size} item{'' if size == 1 else 's'} available. Standard batch size is "
            f"{standard_size} items. Do you want to proceed with a smaller batch?",
        )
    if size == standard_size:
        return BatchPolicy(BatchDecision.FULL, size, standard_size, False)
    return BatchPolicy(
        BatchDecision.OVERSIZED, size, standard_size, True,
        f"Batch has {size} items, more than the standard {standard_size}. Verify before printing.",
    )


@dataclass
class PrintBatch:
    entries: List[PrintQueueEntry]
    policy: BatchPolicy
    allow_partial: bool = False

    @property
    def ready(self) -> bool:
        """True when the batch may be printed as requested."""
        if self.policy.decision is BatchDecision.FULL:
            return True
        return self.policy.decision is BatchDecision.PARTIAL and self.allow_partial

    def to_dict(self):
        return {
            "entries": [e.to_dict() for e in self.entries],
            "entry_ids": [e.id for e in self.entries],
            "ready": self.ready,
            "policy": self.policy.to_dict(),
        }


@dataclass
class QueueStatus:
    total_unprinted: int
    standard_batch_size: int
    oldest_added_at: Optional[datetime] = None
    oldest_age_seconds: Optional[int] = None
    printed_total: int = 0

    @property
    def ready_to_print(self) -> int:
        return min(self.total_unprinted, self.standard_batch_size)

    @property
    def can_print_batch(self) -> bool:
        return self.total_unprinted >= self.standard_batch_size

    @property
    def requires_warning(self) -> bool:
        return 0 < self.total_unprinted < self.standard_batch_size

    def to_dict(self):
        return {
            "total_unprinted": self.total_unprinted,
            "ready_to_print": self.ready_to_print,
            "standard_batch_size": self.standard_batch_size,
            "can_print_batch": self.can_print_batch,
            "requires_warning": self.requires_warning,
            "oldest_added_at": fmt_ts(self.oldest_added_at),
            "oldest_age_seconds": self.oldest_age_seconds,
            "printed_total": self.printed_total,
        }


@dataclass
class CleanupResult:
    old_printed: int = 0
    orphaned: int = 0
    dry_run: bool = False
    orphaned_ids: List[int] = field(default_factory=list)

    @property
    def removed(self) -> int:
        return self.old_printed + self.orphaned

    def to_dict(self):
        return {
            "removed": self.removed,
            "old_printed": self.old_printed,
            "orphaned": self.orphaned,
            "dry_run": self.dry_run,
        }


def _ids(values: Iterable, what: str) -> List[int]:
    """Validate and de-duplicate a list of integer ids, preserving order."""
    if values is None or isinstance(values, (str, bytes)):
        raise InvalidScanRequest(f"{what} must be a list of ids")
    out = []
    for v in values:
        if isinstance(v, bool):
            raise InvalidScanRequest(f"Invalid {what}: {v!r}")
        try:
            i = int(v)
        except (TypeError, ValueError):
            raise InvalidScanRequest(f"Invalid {what}: {v!r}")
        if i not in out:
            out.append(i)
    return out


class PrintQueueManager:
    def __init__(self, batch_size: int = 4, retention_days: int = 30):
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self.batch_size = batch_size
        self.retention_days = retention_days

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def add_to_queue(self, item_ids, actor_id=None, skip_queued=False) -> List[PrintQueueEntry]:
        """Queue each item for printing.

        By default the call is all-or-nothing: if any item already has an
        unprinted entry, nothing is added and ``AlreadyQueued`` lists the
        offending items.  With ``skip_queued`` items already waiting are left
        out and the rest are added, also when another user queues some of them
        while this call runs.
        """
        ids = _ids(item_ids, "order item ids")
        if not ids:
            return []

        items = {
            i.id: i
            for i in db.session.execute(select(OrderItem).where(OrderItem.id.in_(ids))).scalars()
        }
        for item_id in ids:
            item = items.get(item_id)
            if item is None:
                raise ItemNotFound(item_id)
            if item.order.status not in PRINTABLE_ORDER_STATUSES:
                raise ItemNotEligible(item_id, item.order.status.value)

        if not skip_queued:
            return self._insert(ids, actor_id)

        # each lost race leaves at least one more of these items queued by someone else
        for _ in range(len(ids) + 1):
            waiting = set(self._queued_item_ids(ids))
            pending = [i for i in ids if i not in waiting]
            if not pending:
                return []
            try:
                return self._insert(pending, actor_id)
            except AlreadyQueued as e:
                current_app.logger.info("items %s queued concurrently, retrying without them", e.item_ids)
        raise AlreadyQueued(ids)

    def _insert(self, ids, actor_id) -> List[PrintQueueEntry]:
        now = utcnow()
        entries = [PrintQueueEntry(order_item_id=i, added_by=actor_id, added_at=now) for i in ids]
        with unit_of_work("add_to_queue", on_conflict=lambda e: AlreadyQueued(self._queued_item_ids(ids) or ids)):
            db.session.add_all(entries)
            db.session.flush()

        current_app.logger.info("added %d item(s) to print queue (by %s)", len(entries), actor_id)
        return entries

    def mark_batch_printed(self, entry_ids, actor_id=None) -> List[PrintQueueEntry]:
        """Flag every entry of the batch printed, or none of them."""
        ids = _ids(entry_ids, "queue entry ids")
        if not ids:
            raise InvalidScanRequest("No queue entry ids provided for marking as printed")

        now = utcnow()
        with unit_of_work("mark_batch_printed"):
            found = {
                e.id: e
                for e in db.session.execute(
                    select(PrintQueueEntry).where(PrintQueueEntry.id.in_(ids)).with_for_update()
                ).scalars()
            }
            missing = [i for i in ids if i not in found]
            if missing:
                raise QueueEntryNotFound(missing)
            printed = [i for i in ids if found[i].is_printed]
            if printed:
                raise AlreadyPrinted(printed)

            res = db.session.execute(
                update(PrintQueueEntry)
                .where(PrintQueueEntry.id.in_(ids), PrintQueueEntry.is_printed.is_(False))
                .values(is_printed=True, printed_at=now, printed_by=actor_id)
                .execution_options(synchronize_session="evaluate")
            )
            if res.rowcount != len(ids):
                # another user printed part of this batch after we read it
                raise AlreadyPrinted(ids)

        current_app.logger.info("marked %d queue entries printed (by %s)", len(ids), actor_id)
        return [found[i] for i in ids]

    def remove_from_queue(self, entry_ids) -> int:
        ids = _ids(entry_ids, "queue entry ids")
        if not ids:
            return 0
        with unit_of_work("remove_from_queue"):
            res = db.session.execute(
                delete(PrintQueueEntry)
                .where(PrintQueueEntry.id.in_(ids), PrintQueueEntry.is_printed.is_(False))
                .execution_options(synchronize_session=False)
            )
        current_app.logger.info("removed %d entries from print queue", res.rowcount)
        return res.rowcount

    def cleanup(self, retention_days: Optional[int] = None, dry_run: bool = False) -> CleanupResult:
        """Delete printed entries past retention and entries whose item is gone."""
        days = self.retention_days if retention_days is None else retention_days
        result = CleanupResult(dry_run=dry_run)

        old_printed = [PrintQueueEntry.is_printed.is_(True)]
        if days > 0:
            old_printed.append(PrintQueueEntry.printed_at < utcnow() - timedelta(days=days))

        orphan_ids = db.session.execute(
            select(PrintQueueEntry.id)
            .outerjoin(OrderItem, OrderItem.id == PrintQueueEntry.order_item_id)
            .where(OrderItem.id.is_(None))
        ).scalars().all()
        result.orphaned_ids = list(orphan_ids)

        if dry_run:
            result.old_printed = db.session.execute(
                select(func.count()).select_from(PrintQueueEntry).where(*old_printed)
            ).scalar_one()
            result.orphaned = len(orphan_ids)
            return result

        with unit_of_work("cleanup_print_queue"):
            if orphan_ids:
                result.orphaned = db.session.execute(
                    delete(PrintQueueEntry)
                    .where(PrintQueueEntry.id.in_(orphan_ids))
                    .execution_options(synchronize_session=False)
                ).rowcount
            result.old_printed = db.session.execute(
                delete(PrintQueueEntry).where(*old_printed).execution_options(synchronize_session=False)
            ).rowcount

        current_app.logger.info(
            "print queue cleanup removed %d printed and %d orphaned entries",
            result.old_printed, result.orphaned,
        )
        return result

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get_queue(self, include_printed: bool = False) -> List[PrintQueueEntry]:
        stmt = select(PrintQueueEntry)
        if not include_printed:
            stmt = stmt.where(PrintQueueEntry.is_printed.is_(False))
        stmt = stmt.order_by(PrintQueueEntry.added_at, PrintQueueEntry.id)
        return db.session.execute(stmt).scalars().all()

    def unprinted_count(self) -> int:
        return db.session.execute(
            select(func.count()).select_from(PrintQueueEntry).where(PrintQueueEntry.is_printed.is_(False))
        ).scalar_one()

    def can_print_batch(self) -> bool:
        return self.unprinted_count() >= self.batch_size

    def get_next_batch(self, allow_partial: bool = False) -> PrintBatch:
        """Oldest ``min(batch_size, unprinted)`` entries with their policy.

        A short batch is returned either way; it is only ``ready`` when the
        caller opted into partial batches.
        """
        entries = db.session.execute(
            select(PrintQueueEntry)
            .where(PrintQueueEntry.is_printed.is_(False))
            .order_by(PrintQueueEntry.added_at, PrintQueueEntry.id)
            .limit(self.batch_size)
        ).scalars().all()
        return PrintBatch(entries, evaluate_batch_size(len(entries), self.batch_size), allow_partial)

    def validate_batch(self) -> dict:
        batch = self.get_next_batch()
        return {
            "validation": batch.policy.to_dict(),
            "queue_status": self.get_queue_status().to_dict(),
            "entry_ids": [e.id for e in batch.entries],
        }

    def get_queue_status(self) -> QueueStatus:
        total, oldest = db.session.execute(
            select(func.count(), func.min(PrintQueueEntry.added_at))
            .where(PrintQueueEntry.is_printed.is_(False))
        ).one()
        printed = db.session.execute(
            select(func.count()).select_from(PrintQueueEntry).where(PrintQueueEntry.is_printed.is_(True))
        ).scalar_one()
        age = None
        if oldest is not None:
            age = max(0, int((utcnow() - oldest).total_seconds()))
        return QueueStatus(
            total_unprinted=total,
            standard_batch_size=self.batch_size,
            oldest_added_at=oldest,
            oldest_age_seconds=age,
            printed_total=printed,
        )

    @staticmethod
    def _queued_item_ids(item_ids) -> List[int]:
        return db.session.execute(
            select(PrintQueueEntry.order_item_id).where(
                PrintQueueEntry.order_item_id.in_(item_ids), PrintQueueEntry.is_printed.is_(False)
            )
        ).scalars().all()
