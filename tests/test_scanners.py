import pandas as pd
import pytest

from floortrack.errors import (
    DuplicateScannerPrefix,
    InvalidScanRequest,
    MalformedBarcode,
    UnknownScanner,
    WorkerNotFound,
)
from floortrack.models import BarcodeScanner
from floortrack.workflow import Station


@pytest.fixture()
def directory(services, ctx):
    return services.scanners


def test_resolve_seeded_scanner(directory, worker_ids):
    actor = directory.resolve("s3a")
    assert actor.station is Station.SEWING
    assert actor.worker_id == worker_ids["AS003"]
    assert actor.scanner_prefix == "S3A" and actor.via_scanner


def test_register_and_duplicate(directory, worker_ids):
    scanner = directory.register("c7b", worker_ids["PS002"], model="DS2208", serial_number="SN-1")
    assert scanner.prefix == "C7B" and scanner.station is Station.CUTTING
    with pytest.raises(DuplicateScannerPrefix):
        directory.register("C7B", worker_ids["AS003"])
    assert BarcodeScanner.query.filter_by(prefix="C7B").count() == 1


def test_register_validation(directory, worker_ids):
    with pytest.raises(MalformedBarcode):
        directory.register("X1A", worker_ids["RK001"])
    with pytest.raises(InvalidScanRequest):
        directory.register("C8A", worker_ids["RK001"], station="Sewing")
    with pytest.raises(WorkerNotFound):
        directory.register("C8A", 999)


def test_scanner_without_station_defaults_to_office(directory, worker_ids):
    scanner = directory.register("O8A", worker_ids["RK001"])
    scanner.station = None
    assert directory.resolve("O8A").station is Station.OFFICE


def test_update_and_deactivate(directory, worker_ids):
    scanner = directory.lookup("P6A")
    directory.update(scanner.id, worker_id=worker_ids["RK001"], model="new")
    assert directory.resolve("P6A").worker_name == "Rajesh Kumar"

    directory.deactivate(scanner.id)
    with pytest.raises(UnknownScanner):
        directory.lookup("P6A")
    with pytest.raises(UnknownScanner):
        directory.update(999, model="x")


def test_import_frame(directory):
    df = pd.DataFrame([
        {"Prefix": "S9A", "Worker_Token": "AS003", "Station": "Sewing"},
        {"Prefix": "S3A", "Worker_Token": "AS003", "Station": ""},
        {"Prefix": "Q1A", "Worker_Token": "AS003", "Station": ""},
        {"Prefix": "S9B", "Worker_Token": "NOPE", "Station": ""},
    ])
    summary = directory.import_frame(df)
    assert summary == {"added": 1, "skipped": 1, "invalid": 2, "skipped_prefixes": ["S3A"]}
    assert directory.resolve("S9A").station is Station.SEWING


def test_import_frame_missing_columns(directory):
    with pytest.raises(InvalidScanRequest):
        directory.import_frame(pd.DataFrame([{"prefix": "S9A"}]))
