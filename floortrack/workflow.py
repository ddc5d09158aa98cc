"""Production workflow: statuses, stations and the transition rules.

Items move through a fixed line of stations.  Workers scan an item when they
*finish* their step, so a scan at a station moves the item to the status of
the *next* step.  The Office station appears twice: it starts production
(``NOT_STARTED -> CUTTING``) and it finalizes finished goods (``-> READY``).

Scans may skip forward (an operator can correct a missed scan by scanning
further down the line) but never move an item backward.
"""

import enum
from typing import NamedTuple, Optional, Union


class ItemStatus(str, enum.Enum):
    NOT_STARTED = "NOT_STARTED"
    CUTTING = "CUTTING"
    SEWING = "SEWING"
    FOAM_CUTTING = "FOAM_CUTTING"
    STUFFING = "STUFFING"
    PACKAGING = "PACKAGING"
    FINISHED = "FINISHED"
    READY = "READY"


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    PROCESSING = "PROCESSING"
    READY_TO_SHIP = "READY_TO_SHIP"
    SHIPPED = "SHIPPED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class Station(str, enum.Enum):
    OFFICE = "Office"
    CUTTING = "Cutting"
    SEWING = "Sewing"
    FOAM_CUTTING = "Foam Cutting"
    STUFFING = "Stuffing"
    PACKAGING = "Packaging"


class StationTransition(NamedTuple):
    station: Station
    from_status: ItemStatus
    to_status: ItemStatus


WORKFLOW_ORDER = tuple(ItemStatus)

# One designated step per station.  Office's finalize step is handled by
# its own rule in ``next_status``.
STATION_TRANSITIONS = {
    Station.OFFICE: StationTransition(Station.OFFICE, ItemStatus.NOT_STARTED, ItemStatus.CUTTING),
    Station.CUTTING: StationTransition(Station.CUTTING, ItemStatus.CUTTING, ItemStatus.SEWING),
    Station.SEWING: StationTransition(Station.SEWING, ItemStatus.SEWING, ItemStatus.FOAM_CUTTING),
    Station.FOAM_CUTTING: StationTransition(Station.FOAM_CUTTING, ItemStatus.FOAM_CUTTING, ItemStatus.STUFFING),
    Station.STUFFING: StationTransition(Station.STUFFING, ItemStatus.STUFFING, ItemStatus.PACKAGING),
    Station.PACKAGING: StationTransition(Station.PACKAGING, ItemStatus.PACKAGING, ItemStatus.FINISHED),
}

STATUS_DISPLAY_NAMES = {
    ItemStatus.NOT_STARTED: "Not Started Production",
    ItemStatus.CUTTING: "Item being processed at Cutting",
    ItemStatus.SEWING: "Item being processed at Sewing",
    ItemStatus.FOAM_CUTTING: "Item being processed at Foam Cutting",
    ItemStatus.STUFFING: "Item being processed at Stuffing",
    ItemStatus.PACKAGING: "Item being processed at Packaging",
    ItemStatus.FINISHED: "Item Done",
    ItemStatus.READY: "Item Ready",
}

# Statuses in which an order's items may be scanned on the floor.
PRODUCTION_ORDER_STATUSES = frozenset({OrderStatus.APPROVED, OrderStatus.PROCESSING})

# Order statuses from which items may be sent to the print queue.
PRINTABLE_ORDER_STATUSES = frozenset({
    OrderStatus.APPROVED,
    OrderStatus.PROCESSING,
    OrderStatus.READY_TO_SHIP,
    OrderStatus.SHIPPED,
    OrderStatus.COMPLETED,
})


def workflow_index(status: Union[ItemStatus, str]) -> int:
    return WORKFLOW_ORDER.index(ItemStatus(status))


def status_display_name(status: Union[ItemStatus, str]) -> str:
    try:
        return STATUS_DISPLAY_NAMES[ItemStatus(status)]
    except ValueError:
        return str(status).replace("_", " ").lower()


def parse_station(value: Union[Station, str]) -> Optional[Station]:
    """Resolve a station by value ("Foam Cutting") or name ("FOAM_CUTTING").

    Matching is case-insensitive.  Returns ``None`` for unknown stations.
    """
    if isinstance(value, Station):
        return value
    if not value:
        return None
    needle = str(value).strip().lower()
    for station in Station:
        if needle in (station.value.lower(), station.name.lower()):
            return station
    return None


def next_status(
    current: ItemStatus,
    station: Station,
    last_station: Optional[Station] = None,
) -> Optional[ItemStatus]:
    """Compute the status an item moves to when scanned at ``station``.

    Returns ``None`` when the scan must be rejected.

    ``last_station`` is the station that most recently scanned the item.
    Items created before scan history was kept have none, and the two cases
    are handled separately:

    * with history, Office may finalize from any status except ``CUTTING``
      right after its own start-of-production scan;
    * without history, Office may finalize from any status except
      ``CUTTING``.
    """
    current = ItemStatus(current)
    station = Station(station)

    if current is ItemStatus.NOT_STARTED:
        if station is Station.OFFICE:
            return ItemStatus.CUTTING
        return None

    if station is Station.OFFICE:
        # READY is terminal; re-finalizing would double the completion entry
        if current is ItemStatus.READY:
            return None
        if last_station is None:
            if current is ItemStatus.CUTTING:
                return None
            return ItemStatus.READY
        if current is ItemStatus.CUTTING and Station(last_station) is Station.OFFICE:
            return None
        return ItemStatus.READY

    target = STATION_TRANSITIONS[station].to_status
    if workflow_index(target) > workflow_index(current):
        return target
    return None


def is_valid_transition(
    current: ItemStatus,
    station: Station,
    last_station: Optional[Station] = None,
) -> bool:
    return next_status(current, station, last_station) is not None
