"""Per-application service container.

``create_app`` builds one ``Services`` and stores it in
``app.extensions["floortrack"]``; request handlers reach it through
``get_services()``.  Nothing here is module-level state, so every app (and
every test) gets its own instances.
"""

from dataclasses import dataclass

from flask import current_app

from .audit import AuditLog
from .notifications import LoggingNotifier, Notifier
from .orders import ApprovalService
from .print_queue import PrintQueueManager
from .processing_log import ProcessingLogManager
from .rollup import OrderRollupCoordinator
from .scanners import ScannerDirectory
from .scanning import ScanService


@dataclass
class Services:
    notifier: Notifier
    audit: AuditLog
    scanners: ScannerDirectory
    logs: ProcessingLogManager
    rollup: OrderRollupCoordinator
    queue: PrintQueueManager
    scans: ScanService
    approvals: ApprovalService

    @classmethod
    def from_app(cls, app, notifier=None, audit=None):
        notifier = notifier or LoggingNotifier()
        audit = audit or AuditLog()
        scanners = ScannerDirectory()
        logs = ProcessingLogManager()
        rollup = OrderRollupCoordinator(notifier)
        queue = PrintQueueManager(
            batch_size=app.config.get("PRINT_BATCH_SIZE", 4),
            retention_days=app.config.get("PRINTED_RETENTION_DAYS", 30),
        )
        return cls(
            notifier=notifier,
            audit=audit,
            scanners=scanners,
            logs=logs,
            rollup=rollup,
            queue=queue,
            scans=ScanService(scanners, logs, rollup, audit),
            approvals=ApprovalService(queue),
        )

    def teardown(self, exc=None):
        if exc is not None:
            current_app.logger.debug("request ended with %r", exc)

    def close(self):
        self.notifier.close()


def get_services() -> Services:
    return current_app.extensions["floortrack"]
