from __future__ import annotations

import threading
from pathlib import Path

import pytest

from conftest import DIM, base_descriptor, one_hot
from db import AttendanceEvent, AttendanceLedger, DescriptorStore, export_attendance_to_csv, export_attendance_to_excel
from errors import StoreUnavailable, ValidationError


def test_upsert_creates_then_updates(store: DescriptorStore) -> None:
    created = store.upsert("CS/F/001", base_descriptor(), name="Ada", department="CS", level="100")
    updated = store.upsert("CS/F/001", one_hot(0), name="Ada L.", department="CS", level="200")

    assert created is True
    assert updated is False
    records = store.list_all()
    assert len(records) == 1
    record = records[0]
    assert record.descriptor == one_hot(0)
    assert record.name == "Ada L."
    assert record.level == "200"
    assert record.created_at
    assert record.updated_at is not None


def test_new_record_has_no_updated_at(store: DescriptorStore) -> None:
    store.upsert("A", one_hot(0), name="A", department="D", level="L")

    assert store.find_by_identity("A").updated_at is None


def test_find_missing_identity_returns_none(store: DescriptorStore) -> None:
    assert store.find_by_identity("nobody") is None


def test_remove(store: DescriptorStore) -> None:
    store.upsert("A", one_hot(0), name="A", department="D", level="L")

    assert store.remove("A") is True
    assert store.remove("A") is False
    assert store.list_all() == []


def test_configured_dimension_is_enforced(store: DescriptorStore) -> None:
    with pytest.raises(ValidationError) as excinfo:
        store.upsert("A", [0.1] * (DIM - 1), name="A", department="D", level="L")

    assert excinfo.value.field == "descriptor"
    assert store.list_all() == []


def test_dimension_established_by_first_write(db_path: Path) -> None:
    store = DescriptorStore(db_path)
    assert store.dimension() is None

    store.upsert("A", [0.1, 0.2, 0.3], name="A", department="D", level="L")

    assert store.dimension() == 3
    with pytest.raises(ValidationError):
        store.upsert("B", [0.1, 0.2], name="B", department="D", level="L")
    with pytest.raises(ValidationError):
        store.upsert("A", [0.1, 0.2, 0.3, 0.4], name="A", department="D", level="L")
    assert store.find_by_identity("A").descriptor == [0.1, 0.2, 0.3]


@pytest.mark.parametrize("bad", [[], [float("nan")] * DIM, ["x"] * DIM])
def test_rejects_unusable_descriptors(store: DescriptorStore, bad) -> None:
    with pytest.raises(ValidationError):
        store.upsert("A", bad, name="A", department="D", level="L")


def test_list_all_newest_first(store: DescriptorStore) -> None:
    store.upsert("A", one_hot(0), name="A", department="D", level="L")
    store.upsert("B", one_hot(1), name="B", department="D", level="L")

    assert [r.identity for r in store.list_all()] == ["B", "A"]


def test_concurrent_enrollment_of_same_identity(store: DescriptorStore) -> None:
    created = []
    errors = []

    def worker(i: int) -> None:
        try:
            created.append(store.upsert("CS/F/001", one_hot(i), name=f"n{i}", department="D", level="L"))
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert created.count(True) == 1
    records = store.list_all()
    assert len(records) == 1
    # Whichever write landed last, name and descriptor come from the same call.
    i = int(records[0].name[1:])
    assert records[0].descriptor == one_hot(i)


def _event(identity: str, day: str = "2026-10-18") -> AttendanceEvent:
    return AttendanceEvent(identity=identity, date=day, created_at=f"{day}T09:00:00", name=identity)


def test_ledger_insert_once_per_identity_and_day(ledger: AttendanceLedger) -> None:
    assert ledger.insert_once(_event("A")) is True
    assert ledger.insert_once(_event("A")) is False
    assert ledger.insert_once(_event("A", "2026-10-19")) is True

    assert len(ledger.fetch_for_date("2026-10-18")) == 1
    assert [e.date for e in ledger.fetch_for_identity("A")] == ["2026-10-19", "2026-10-18"]
    assert ledger.get("A", "2026-10-18").name == "A"
    assert ledger.get("B", "2026-10-18") is None


def test_unreachable_database_raises_store_unavailable(tmp_path: Path) -> None:
    with pytest.raises(StoreUnavailable):
        DescriptorStore(tmp_path / "missing" / "dir" / "attendance.db")


def test_export_csv(ledger: AttendanceLedger, db_path: Path, tmp_path: Path) -> None:
    import pandas as pd

    ledger.insert_once(_event("A"))
    ledger.insert_once(_event("B"))
    ledger.insert_once(_event("A", "2026-10-17"))

    out = export_attendance_to_csv(tmp_path / "reports" / "day.csv", day="2026-10-18", db_path=db_path)

    df = pd.read_csv(out)
    assert sorted(df["registration_number"]) == ["A", "B"]
    assert set(df["date"]) == {"2026-10-18"}


def test_export_excel(ledger: AttendanceLedger, db_path: Path, tmp_path: Path) -> None:
    pytest.importorskip("openpyxl")
    ledger.insert_once(_event("A"))

    out = export_attendance_to_excel(tmp_path / "all.xlsx", db_path=db_path)

    assert out.exists()


def test_ledger_rejects_malformed_dates(ledger: AttendanceLedger) -> None:
    with pytest.raises(ValidationError) as excinfo:
        ledger.fetch_for_date("18/10/2026")
    assert excinfo.value.field == "date"


def test_export_defaults_to_reports_dir(
    ledger: AttendanceLedger, db_path: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    import db

    monkeypatch.setattr(db, "REPORTS_DIR", tmp_path / "reports")
    ledger.insert_once(_event("A"))

    day_report = export_attendance_to_csv(day="2026-10-18", db_path=db_path)
    full_report = export_attendance_to_csv(db_path=db_path)

    assert day_report == tmp_path / "reports" / "attendance_2026-10-18.csv"
    assert full_report == tmp_path / "reports" / "attendance.csv"
    assert day_report.exists() and full_report.exists()


def test_concurrent_enrollment_across_store_instances(db_path: Path) -> None:
    stores = [DescriptorStore(db_path, dimension=DIM) for _ in range(6)]
    created = []
    errors = []
    lock = threading.Lock()

    def worker(i: int, store: DescriptorStore) -> None:
        try:
            result = store.upsert("CS/F/001", one_hot(i), name=f"n{i}", department="D", level="L")
        except Exception as exc:
            with lock:
                errors.append(exc)
            return
        with lock:
            created.append(result)

    threads = [threading.Thread(target=worker, args=(i, s)) for i, s in enumerate(stores)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert created.count(True) == 1
    assert created.count(False) == 5
    records = DescriptorStore(db_path).list_all()
    assert len(records) == 1
    i = int(records[0].name[1:])
    assert records[0].descriptor == one_hot(i)
