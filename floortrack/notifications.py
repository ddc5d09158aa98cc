"""Customer notifications (fire-and-forget).

Delivery (email, SMS) lives outside this application.  The dispatcher here
only defines the messages the floor emits; the default implementation
writes them to the application log.  Callers never let a failed
notification fail the operation that triggered it.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from flask import current_app

ORDER_PROCESSING = "order_processing"
ITEM_READY = "item_ready"
ORDER_READY_TO_SHIP = "order_ready_to_ship"


@dataclass(frozen=True)
class Notification:
    kind: str
    recipient: Optional[str]
    payload: Dict[str, Any] = field(default_factory=dict)


class Notifier:
    def send(self, notification: Notification) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass


class LoggingNotifier(Notifier):
    def send(self, notification: Notification) -> None:
        if not notification.recipient:
            current_app.logger.debug("no recipient for %s notification, skipped", notification.kind)
            return
        current_app.logger.info(
            "notification %s -> %s: %s", notification.kind, notification.recipient, notification.payload
        )


def dispatch(notifier: Notifier, notifications) -> int:
    """Send each notification, logging and swallowing failures.

    Returns the number sent successfully.
    """
    sent = 0
    for n in notifications:
        try:
            notifier.send(n)
            sent += 1
        except Exception as e:
            current_app.logger.error("failed to send %s notification to %s: %s", n.kind, n.recipient, e)
    return sent
