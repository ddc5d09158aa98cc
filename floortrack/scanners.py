"""Scanner directory: who is holding a scanner, and where it belongs.

On the floor, kiosks are shared.  The worker credited with a scan is the one
the *scanner* is assigned to, not whoever is logged in at the kiosk, so a
scan resolves its actor once from the scanner prefix and carries that
``ResolvedActor`` through the rest of the scan.
"""

from dataclasses import dataclass
from typing import Optional

from flask import current_app
from sqlalchemy import select

from . import db
from .barcode import STATION_TO_CODE, parse_prefix
from .errors import (
    DuplicateScannerPrefix,
    InvalidScanRequest,
    MalformedBarcode,
    ScannerStationMismatch,
    UnknownScanner,
    WorkerNotFound,
)
from .models import BarcodeScanner, Worker
from .storage import unit_of_work
from .workflow import Station, parse_station


@dataclass(frozen=True)
class ResolvedActor:
    """The worker and station a scan is attributed to."""

    worker_id: Optional[int]
    worker_name: Optional[str]
    station: Station
    scanner_prefix: Optional[str] = None

    @property
    def via_scanner(self) -> bool:
        return self.scanner_prefix is not None

    def to_dict(self):
        return {
            "worker_id": self.worker_id,
            "worker_name": self.worker_name,
            "station": self.station.value,
            "scanner_prefix": self.scanner_prefix,
        }


def _worker_id(value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidScanRequest("worker_id must be an integer", {"worker_id": value})


class ScannerDirectory:
    def lookup(self, prefix: str) -> BarcodeScanner:
        prefix = (prefix or "").strip().upper()
        scanner = db.session.execute(
            select(BarcodeScanner).where(
                BarcodeScanner.prefix == prefix, BarcodeScanner.is_active.is_(True)
            )
        ).scalar_one_or_none()
        if scanner is None:
            raise UnknownScanner(prefix)
        return scanner

    def resolve(self, prefix: str, station: Optional[Station] = None) -> ResolvedActor:
        """Resolve a scanner prefix to the worker and home station.

        If ``station`` is given it must match the scanner's home station,
        otherwise ``ScannerStationMismatch`` is raised.
        """
        scanner = self.lookup(prefix)
        home = scanner.home_station
        if station is not None and Station(station) is not home:
            raise ScannerStationMismatch(scanner.prefix, home.value, Station(station).value)
        worker = scanner.worker
        return ResolvedActor(
            worker_id=scanner.worker_id,
            worker_name=worker.name if worker else None,
            station=home,
            scanner_prefix=scanner.prefix,
        )

    # ------------------------------------------------------------------
    # Provisioning
    # ------------------------------------------------------------------
    def register(self, prefix, worker_id, station=None, model=None, serial_number=None) -> BarcodeScanner:
        prefix = (prefix or "").strip().upper()
        parsed = parse_prefix(prefix)
        station = self._station_for(parsed, station)
        worker_id = _worker_id(worker_id)
        if db.session.get(Worker, worker_id) is None:
            raise WorkerNotFound(worker_id)

        scanner = BarcodeScanner(
            prefix=prefix,
            worker_id=worker_id,
            station=station,
            model=model,
            serial_number=serial_number,
            is_active=True,
        )
        with unit_of_work("register_scanner", on_conflict=lambda e: DuplicateScannerPrefix(prefix)):
            db.session.add(scanner)
        current_app.logger.info("registered scanner %s for worker %s at %s", prefix, worker_id, station.value)
        return scanner

    def update(self, scanner_id, **fields) -> BarcodeScanner:
        scanner = db.session.get(BarcodeScanner, scanner_id)
        if scanner is None:
            raise UnknownScanner(str(scanner_id))
        with unit_of_work("update_scanner"):
            if fields.get("worker_id") is not None:
                fields["worker_id"] = _worker_id(fields["worker_id"])
                if db.session.get(Worker, fields["worker_id"]) is None:
                    raise WorkerNotFound(fields["worker_id"])
                scanner.worker_id = fields["worker_id"]
            if fields.get("station") is not None:
                scanner.station = self._station_for(parse_prefix(scanner.prefix), fields["station"])
            for key in ("model", "serial_number"):
                if key in fields:
                    setattr(scanner, key, fields[key])
            if fields.get("is_active") is not None:
                scanner.is_active = bool(fields["is_active"])
        return scanner

    def deactivate(self, scanner_id) -> BarcodeScanner:
        return self.update(scanner_id, is_active=False)

    def import_frame(self, df) -> dict:
        """Register scanners from a pandas DataFrame.

        Expected columns: ``prefix``, ``worker_token`` and optionally
        ``station``, ``model``, ``serial_number``.  Rows with an existing
        prefix are skipped, rows that fail validation are counted invalid.
        """
        df = df.rename(columns=lambda c: str(c).strip().lower())
        missing = {"prefix", "worker_token"} - set(df.columns)
        if missing:
            raise InvalidScanRequest(f"Missing columns: {', '.join(sorted(missing))}")

        added = skipped = invalid = 0
        skipped_prefixes = []
        for row in df.fillna("").to_dict(orient="records"):
            prefix = str(row.get("prefix", "")).strip().upper()
            token = str(row.get("worker_token", "")).strip()
            worker = Worker.query.filter_by(token_id=token).first() if token else None
            if not prefix or worker is None:
                invalid += 1
                continue
            try:
                self.register(
                    prefix,
                    worker.id,
                    station=str(row.get("station") or "").strip() or None,
                    model=str(row.get("model") or "").strip() or None,
                    serial_number=str(row.get("serial_number") or "").strip() or None,
                )
                added += 1
            except DuplicateScannerPrefix:
                skipped += 1
                if len(skipped_prefixes) < 10:
                    skipped_prefixes.append(prefix)
            except (MalformedBarcode, InvalidScanRequest):
                invalid += 1
        return {"added": added, "skipped": skipped, "invalid": invalid, "skipped_prefixes": skipped_prefixes}

    @staticmethod
    def _station_for(parsed, station) -> Station:
        if station is None or station == "":
            return parsed.station
        resolved = parse_station(station)
        if resolved is None:
            raise InvalidScanRequest(f"Unknown station: {station}", {"station": station})
        if STATION_TO_CODE[resolved] != parsed.prefix[0]:
            raise InvalidScanRequest(
                f"Prefix {parsed.prefix} does not belong to station {resolved.value}",
                {"prefix": parsed.prefix, "station": resolved.value},
            )
        return resolved
