"""Encoding and decoding of kiosk scan strings.

A scan string looks like ``PPP-ORDERNUMBER-ITEMREF``.  ``PPP`` is the
scanner prefix, three characters programmed into each handheld scanner:

* station code - one of ``STATION_CODES``
* person code - ``1``-``9`` then ``A``-``Z`` (worker numbers 1 to 35)
* sequence code - ``A``-``Z`` or ``0``-``9``, distinguishes a worker's scanners

``ORDERNUMBER`` and ``ITEMREF`` are opaque, non-empty tokens.  Because the
string is split on ``-`` neither may contain a dash.
"""

import string
from dataclasses import dataclass
from typing import Iterable, List, Optional

from .errors import MalformedBarcode
from .workflow import Station

STATION_CODES = {
    "O": Station.OFFICE,
    "C": Station.CUTTING,
    "S": Station.SEWING,
    "F": Station.FOAM_CUTTING,
    "T": Station.STUFFING,
    "P": Station.PACKAGING,
}
STATION_TO_CODE = {station: code for code, station in STATION_CODES.items()}

PERSON_CODES = string.digits[1:] + string.ascii_uppercase
SEQUENCE_CODES = string.ascii_uppercase + string.digits


@dataclass(frozen=True)
class ScannerPrefix:
    prefix: str
    station: Station
    worker_code: str
    sequence: str


@dataclass(frozen=True)
class DecodedBarcode:
    prefix: str
    order_number: str
    item_ref: str
    station: Station
    worker: str
    sequence: str

    def encode(self) -> str:
        return encode(self.prefix, self.order_number, self.item_ref)


def parse_prefix(prefix: str) -> ScannerPrefix:
    """Validate a scanner prefix and split it into its three codes."""
    if not prefix or len(prefix) != 3:
        raise MalformedBarcode(
            prefix or "", "prefix must be exactly 3 characters: [STATION][PERSON][SEQUENCE]"
        )
    station_code, worker_code, sequence = prefix[0], prefix[1], prefix[2]
    if station_code not in STATION_CODES:
        raise MalformedBarcode(prefix, f"invalid station code: {station_code}")
    if worker_code not in PERSON_CODES:
        raise MalformedBarcode(prefix, f"invalid person code: {worker_code}")
    if sequence not in SEQUENCE_CODES:
        raise MalformedBarcode(prefix, f"invalid sequence code: {sequence}")
    return ScannerPrefix(prefix, STATION_CODES[station_code], worker_code, sequence)


def decode(barcode: str) -> DecodedBarcode:
    """Decode a scan string.  Raises ``MalformedBarcode`` on bad input."""
    barcode = (barcode or "").strip()
    parts = barcode.split("-")
    if len(parts) != 3:
        raise MalformedBarcode(barcode, "expected PREFIX-ORDER-ITEM")
    prefix, order_number, item_ref = parts
    if not order_number or not item_ref:
        raise MalformedBarcode(barcode, "order number and item reference must not be empty")
    try:
        parsed = parse_prefix(prefix)
    except MalformedBarcode as e:
        raise MalformedBarcode(barcode, e.reason) from e
    return DecodedBarcode(
        prefix=parsed.prefix,
        order_number=order_number,
        item_ref=item_ref,
        station=parsed.station,
        worker=parsed.worker_code,
        sequence=parsed.sequence,
    )


def encode(prefix: str, order_number: str, item_ref: str) -> str:
    parse_prefix(prefix)
    for token in (str(order_number), str(item_ref)):
        if not token or "-" in token:
            raise MalformedBarcode(token, "tokens must be non-empty and contain no '-'")
    return f"{prefix}-{order_number}-{item_ref}"


def person_code(person_number: int) -> Optional[str]:
    if 1 <= person_number <= len(PERSON_CODES):
        return PERSON_CODES[person_number - 1]
    return None


def person_number(code: str) -> Optional[int]:
    idx = PERSON_CODES.find(code) if code and len(code) == 1 else -1
    return idx + 1 if idx >= 0 else None


def make_prefix(station: Station, number: int, sequence: str = "A") -> str:
    """Build the prefix for worker ``number`` at ``station``.

    Raises ``MalformedBarcode`` if the worker number or sequence is out of range.
    """
    code = person_code(number)
    if code is None:
        raise MalformedBarcode(str(number), "person number must be between 1 and 35")
    prefix = f"{STATION_TO_CODE[Station(station)]}{code}{sequence}"
    parse_prefix(prefix)
    return prefix


def suggest_prefixes(station: Station, existing: Iterable[str] = (), limit: int = 10) -> List[str]:
    taken = set(existing)
    suggestions = []
    for number in range(1, 6):
        for sequence in "ABC":
            prefix = make_prefix(station, number, sequence)
            if prefix not in taken:
                suggestions.append(prefix)
    return suggestions[:limit]


def describe_prefix(prefix: str) -> str:
    parsed = parse_prefix(prefix)
    return (
        f"{prefix} ({parsed.station.value}, Person {person_number(parsed.worker_code)}, "
        f"Scanner {parsed.sequence})"
    )


def label_payload(order_number: str, item_ref: str) -> str:
    """Text printed on an item label.

    Scanners are programmed to prepend their own prefix, so a label only
    carries ``ORDER-ITEM`` and the same label works at every station.
    """
    for token in (str(order_number), str(item_ref)):
        if not token or "-" in token:
            raise MalformedBarcode(token, "tokens must be non-empty and contain no '-'")
    return f"{order_number}-{item_ref}"
