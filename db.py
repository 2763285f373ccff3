from __future__ import annotations

import json
import math
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Union

from config import DB_PATH, REPORTS_DIR, SQLITE_TIMEOUT_SECONDS
from errors import StoreUnavailable, ValidationError
from log import get_logger

logger = get_logger(__name__)

DateLike = Union[date, str]


@dataclass
class EnrollmentRecord:
    identity: str
    name: str
    department: str
    level: str
    descriptor: List[float]
    created_at: str
    updated_at: Optional[str] = None


@dataclass
class AttendanceEvent:
    identity: str
    date: str  # ISO 8601 calendar day
    created_at: str
    name: Optional[str] = None
    department: Optional[str] = None
    level: Optional[str] = None
    course_code: Optional[str] = None


def _now_iso() -> str:
    return datetime.now().isoformat(timespec="seconds")


def day_iso(day: DateLike) -> str:
    if isinstance(day, datetime):
        return day.date().isoformat()
    if isinstance(day, date):
        return day.isoformat()
    try:
        return date.fromisoformat(str(day)).isoformat()
    except ValueError as exc:
        raise ValidationError("date", f"expected YYYY-MM-DD, got {day!r}") from exc


@contextmanager
def connect_db(db_path: Optional[Path] = None) -> Iterator[sqlite3.Connection]:
    path = Path(db_path) if db_path is not None else DB_PATH
    try:
        conn = sqlite3.connect(str(path), timeout=SQLITE_TIMEOUT_SECONDS)
    except sqlite3.Error as exc:
        logger.error("Cannot open database %s: %s", path, exc)
        raise StoreUnavailable(str(exc)) from exc
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    except sqlite3.Error as exc:
        conn.rollback()
        logger.error("Database error on %s: %s", path, exc)
        raise StoreUnavailable(str(exc)) from exc
    finally:
        conn.close()


def initialize_database(db_path: Optional[Path] = None) -> None:
    with connect_db(db_path) as conn:
        cur = conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS faces (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                registration_number TEXT NOT NULL UNIQUE,
                name TEXT NOT NULL,
                department TEXT NOT NULL,
                level TEXT NOT NULL,
                descriptor TEXT NOT NULL,
                descriptor_dim INTEGER NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS attendance (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                registration_number TEXT NOT NULL,
                date TEXT NOT NULL,
                created_at TEXT NOT NULL,
                name TEXT,
                department TEXT,
                level TEXT,
                course_code TEXT,
                UNIQUE(registration_number, date)
            )
            """
        )
    logger.debug("Database ready at %s", db_path or DB_PATH)


def coerce_descriptor(descriptor: Sequence[float]) -> List[float]:
    try:
        vector = [float(v) for v in descriptor]
    except (TypeError, ValueError) as exc:
        raise ValidationError("descriptor", f"descriptor must be a sequence of numbers: {exc}") from exc
    if not vector:
        raise ValidationError("descriptor", "descriptor is empty")
    if not all(math.isfinite(v) for v in vector):
        raise ValidationError("descriptor", "descriptor contains non-finite values")
    return vector


def _row_to_record(r: sqlite3.Row) -> EnrollmentRecord:
    return EnrollmentRecord(
        identity=r["registration_number"],
        name=r["name"],
        department=r["department"],
        level=r["level"],
        descriptor=json.loads(r["descriptor"]),
        created_at=r["created_at"],
        updated_at=r["updated_at"],
    )


def _row_to_event(r: sqlite3.Row) -> AttendanceEvent:
    return AttendanceEvent(
        identity=r["registration_number"],
        date=r["date"],
        created_at=r["created_at"],
        name=r["name"],
        department=r["department"],
        level=r["level"],
        course_code=r["course_code"],
    )


class DescriptorStore:
    """One face descriptor per registration number.

    The descriptor length is fixed: either passed as ``dimension`` or taken
    from the first record written. Check-then-write runs under a process lock
    and a ``BEGIN IMMEDIATE`` transaction so concurrent enrollments of the same
    identity serialize.
    """

    def __init__(self, db_path: Optional[Path] = None, dimension: Optional[int] = None) -> None:
        self.db_path = Path(db_path) if db_path is not None else DB_PATH
        self._configured_dim = int(dimension) if dimension is not None else None
        self._lock = threading.Lock()
        initialize_database(self.db_path)

    def _established_dim(self, conn: sqlite3.Connection) -> Optional[int]:
        if self._configured_dim is not None:
            return self._configured_dim
        row = conn.execute("SELECT descriptor_dim FROM faces ORDER BY id LIMIT 1").fetchone()
        return int(row["descriptor_dim"]) if row is not None else None

    def dimension(self) -> Optional[int]:
        with connect_db(self.db_path) as conn:
            return self._established_dim(conn)

    def upsert(
        self,
        identity: str,
        descriptor: Sequence[float],
        name: str,
        department: str,
        level: str,
    ) -> bool:
        """Insert or replace the record for ``identity``. Returns True if it was new."""
        vector = coerce_descriptor(descriptor)
        payload = json.dumps(vector)
        now = _now_iso()
        with self._lock, connect_db(self.db_path) as conn:
            conn.execute("BEGIN IMMEDIATE")
            expected = self._established_dim(conn)
            if expected is not None and len(vector) != expected:
                raise ValidationError(
                    "descriptor", f"descriptor must have {expected} values, got {len(vector)}"
                )
            row = conn.execute(
                "SELECT id FROM faces WHERE registration_number=?", (identity,)
            ).fetchone()
            if row is None:
                conn.execute(
                    """
                    INSERT INTO faces(registration_number, name, department, level,
                                      descriptor, descriptor_dim, created_at)
                    VALUES(?, ?, ?, ?, ?, ?, ?)
                    """,
                    (identity, name, department, level, payload, len(vector), now),
                )
                return True
            conn.execute(
                """
                UPDATE faces
                SET name=?, department=?, level=?, descriptor=?, descriptor_dim=?, updated_at=?
                WHERE registration_number=?
                """,
                (name, department, level, payload, len(vector), now, identity),
            )
            return False

    def list_all(self) -> List[EnrollmentRecord]:
        with connect_db(self.db_path) as conn:
            rows = conn.execute("SELECT * FROM faces ORDER BY created_at DESC, id DESC").fetchall()
            return [_row_to_record(r) for r in rows]

    def find_by_identity(self, identity: str) -> Optional[EnrollmentRecord]:
        with connect_db(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM faces WHERE registration_number=?", (identity,)
            ).fetchone()
            return _row_to_record(row) if row is not None else None

    def remove(self, identity: str) -> bool:
        with self._lock, connect_db(self.db_path) as conn:
            cur = conn.execute("DELETE FROM faces WHERE registration_number=?", (identity,))
            return cur.rowcount > 0


class AttendanceLedger:
    """Attendance rows, unique per (registration number, date)."""

    def __init__(self, db_path: Optional[Path] = None) -> None:
        self.db_path = Path(db_path) if db_path is not None else DB_PATH
        initialize_database(self.db_path)

    def insert_once(self, event: AttendanceEvent) -> bool:
        """Write ``event`` unless that identity already has a row for that date."""
        with connect_db(self.db_path) as conn:
            cur = conn.execute(
                """
                INSERT OR IGNORE INTO attendance(registration_number, date, created_at,
                                                 name, department, level, course_code)
                VALUES(?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    event.identity,
                    event.date,
                    event.created_at,
                    event.name,
                    event.department,
                    event.level,
                    event.course_code,
                ),
            )
            return cur.rowcount == 1

    def get(self, identity: str, day: DateLike) -> Optional[AttendanceEvent]:
        with connect_db(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM attendance WHERE registration_number=? AND date=?",
                (identity, day_iso(day)),
            ).fetchone()
            return _row_to_event(row) if row is not None else None

    def fetch_for_date(self, day: DateLike) -> List[AttendanceEvent]:
        with connect_db(self.db_path) as conn:
            rows = conn.execute(
                "SELECT * FROM attendance WHERE date=? ORDER BY created_at ASC, id ASC",
                (day_iso(day),),
            ).fetchall()
            return [_row_to_event(r) for r in rows]

    def fetch_for_identity(self, identity: str) -> List[AttendanceEvent]:
        with connect_db(self.db_path) as conn:
            rows = conn.execute(
                "SELECT * FROM attendance WHERE registration_number=? ORDER BY date DESC",
                (identity,),
            ).fetchall()
            return [_row_to_event(r) for r in rows]


def _attendance_frame(day: Optional[DateLike], db_path: Optional[Path]):
    import pandas as pd

    query = """
        SELECT registration_number, name, department, level, course_code, date, created_at
        FROM attendance
    """
    params: tuple = ()
    if day is not None:
        query += " WHERE date = ?"
        params = (day_iso(day),)
    query += " ORDER BY date DESC, created_at ASC"
    with connect_db(db_path) as conn:
        return pd.read_sql_query(query, conn, params=params)


def _report_path(suffix: str, day: Optional[DateLike]) -> Path:
    stem = f"attendance_{day_iso(day)}" if day is not None else "attendance"
    return REPORTS_DIR / f"{stem}{suffix}"


def export_attendance_to_csv(csv_path: Optional[Path] = None, day: Optional[DateLike] = None, db_path: Optional[Path] = None) -> Path:
    df = _attendance_frame(day, db_path)
    csv_path = Path(csv_path) if csv_path is not None else _report_path(".csv", day)
    csv_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(csv_path, index=False)
    return csv_path


def export_attendance_to_excel(xlsx_path: Optional[Path] = None, day: Optional[DateLike] = None, db_path: Optional[Path] = None) -> Path:
    df = _attendance_frame(day, db_path)
    xlsx_path = Path(xlsx_path) if xlsx_path is not None else _report_path(".xlsx", day)
    xlsx_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_excel(xlsx_path, index=False)
    return xlsx_path
