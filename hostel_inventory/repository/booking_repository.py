"""Repository layer responsible for all booking storage access."""

from __future__ import annotations

import sqlite3
import uuid
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Iterable, Iterator, Optional, Protocol

from hostel_inventory.domain.models import Booking, BookingStatus, NewBooking
from hostel_inventory.utils.clock import Clock, utc_now
from hostel_inventory.utils.config import Settings, get_settings
from hostel_inventory.utils.logger import get_logger


logger = get_logger(__name__)


class BookingRepositoryError(RuntimeError):
    """Raised when the backing store cannot serve a query or write."""


class BookingRepository(Protocol):
    """Query/write capability the hold engine consumes for booking records."""

    def find_overlapping(
        self,
        room_id: Optional[str],
        start: date,
        end: date,
        statuses: Iterable[BookingStatus],
        exclude_id: Optional[str] = None,
    ) -> list[Booking]: ...

    def find_exact(
        self,
        room_id: str,
        start: date,
        end: date,
        statuses: Iterable[BookingStatus],
    ) -> list[Booking]: ...

    def find_by_external_id(self, external_id: str, platform: str) -> Optional[Booking]: ...

    def get_booking(self, booking_id: str) -> Optional[Booking]: ...

    def create_booking(self, booking: NewBooking) -> Booking: ...

    def create_bookings(self, bookings: Iterable[NewBooking]) -> list[Booking]: ...

    def update_booking(self, booking_id: str, booking: NewBooking) -> Booking: ...

    def cancel_bookings(self, booking_ids: Iterable[str], note: str) -> int: ...

    def delete_booking(self, booking_id: str) -> bool: ...

    def delete_overlapping(
        self,
        room_id: str,
        start: date,
        end: date,
        status: BookingStatus,
    ) -> int: ...


_BOOKING_COLUMNS = """
    booking_id,
    room_id,
    check_in,
    check_out,
    beds_count,
    status,
    platform,
    source,
    payment_status,
    guest_name,
    external_id,
    notes,
    created_at
"""


class SqliteBookingRepository:
    """Encapsulates SQLite access so hold logic stays storage-agnostic."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Clock = utc_now,
    ) -> None:
        self._settings = settings or get_settings()
        self._clock = clock
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._db_path, timeout=10.0)
        connection.row_factory = sqlite3.Row
        return connection

    @contextmanager
    def _session(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection whose statements commit together or not at all."""
        try:
            connection = self._connect()
        except sqlite3.Error as exc:
            raise BookingRepositoryError(f"Booking store unavailable: {exc}") from exc
        try:
            with connection:
                yield connection
        except sqlite3.Error as exc:
            raise BookingRepositoryError(f"Booking store query failed: {exc}") from exc
        finally:
            connection.close()

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS Bookings (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    booking_id TEXT NOT NULL UNIQUE,
                    room_id TEXT NOT NULL,
                    check_in TEXT NOT NULL,
                    check_out TEXT NOT NULL,
                    beds_count INTEGER NOT NULL CHECK (beds_count >= 0),
                    status TEXT NOT NULL,
                    platform TEXT NOT NULL DEFAULT 'direct',
                    source TEXT NOT NULL DEFAULT 'direct',
                    payment_status TEXT,
                    guest_name TEXT NOT NULL DEFAULT '',
                    external_id TEXT,
                    notes TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT
                );
                """
            )
            cursor.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_bookings_room_dates
                ON Bookings(room_id, check_in, check_out);
                """
            )
            cursor.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_bookings_external
                ON Bookings(external_id, platform);
                """
            )
        logger.info("Booking store initialized at %s", self._db_path)

    @staticmethod
    def _to_booking(row: sqlite3.Row) -> Booking:
        return Booking(
            booking_id=str(row["booking_id"]),
            room_id=str(row["room_id"]),
            check_in=date.fromisoformat(row["check_in"]),
            check_out=date.fromisoformat(row["check_out"]),
            beds_count=int(row["beds_count"]),
            status=BookingStatus(row["status"]),
            platform=str(row["platform"]),
            source=str(row["source"]),
            payment_status=row["payment_status"],
            guest_name=str(row["guest_name"]),
            external_id=row["external_id"],
            notes=row["notes"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    @staticmethod
    def _status_clause(statuses: Iterable[BookingStatus]) -> tuple[str, list[str]]:
        values = sorted({BookingStatus(status).value for status in statuses})
        if not values:
            raise ValueError("at least one booking status is required")
        placeholders = ", ".join("?" for _ in values)
        return f"status IN ({placeholders})", values

    def find_overlapping(
        self,
        room_id: Optional[str],
        start: date,
        end: date,
        statuses: Iterable[BookingStatus],
        exclude_id: Optional[str] = None,
    ) -> list[Booking]:
        """Return bookings with ``check_in < end AND check_out > start``."""
        status_sql, params = self._status_clause(statuses)
        clauses = [status_sql, "check_in < ?", "check_out > ?"]
        params.extend([end.isoformat(), start.isoformat()])
        if room_id is not None:
            clauses.append("room_id = ?")
            params.append(str(room_id))
        if exclude_id is not None:
            clauses.append("booking_id != ?")
            params.append(exclude_id)
        where_sql = " AND ".join(clauses)

        with self._session() as conn:
            rows = conn.execute(
                f"""
                SELECT {_BOOKING_COLUMNS}
                FROM Bookings
                WHERE {where_sql}
                ORDER BY created_at ASC, seq ASC;
                """,
                params,
            ).fetchall()
        return [self._to_booking(row) for row in rows]

    def find_exact(
        self,
        room_id: str,
        start: date,
        end: date,
        statuses: Iterable[BookingStatus],
    ) -> list[Booking]:
        status_sql, params = self._status_clause(statuses)
        params.extend([str(room_id), start.isoformat(), end.isoformat()])
        with self._session() as conn:
            rows = conn.execute(
                f"""
                SELECT {_BOOKING_COLUMNS}
                FROM Bookings
                WHERE {status_sql} AND room_id = ? AND check_in = ? AND check_out = ?
                ORDER BY created_at ASC, seq ASC;
                """,
                params,
            ).fetchall()
        return [self._to_booking(row) for row in rows]

    def find_by_external_id(self, external_id: str, platform: str) -> Optional[Booking]:
        with self._session() as conn:
            row = conn.execute(
                f"""
                SELECT {_BOOKING_COLUMNS}
                FROM Bookings
                WHERE external_id = ? AND platform = ?
                ORDER BY seq ASC
                LIMIT 1;
                """,
                (external_id, platform),
            ).fetchone()
        return None if row is None else self._to_booking(row)

    def get_booking(self, booking_id: str) -> Optional[Booking]:
        with self._session() as conn:
            row = conn.execute(
                f"SELECT {_BOOKING_COLUMNS} FROM Bookings WHERE booking_id = ?;",
                (booking_id,),
            ).fetchone()
        return None if row is None else self._to_booking(row)

    def create_booking(self, booking: NewBooking) -> Booking:
        return self.create_bookings([booking])[0]

    def create_bookings(self, bookings: Iterable[NewBooking]) -> list[Booking]:
        """Insert every booking in one transaction and return the stored rows."""
        created_at = self._clock()
        rows = [
            (
                uuid.uuid4().hex,
                str(booking.room_id),
                booking.check_in.isoformat(),
                booking.check_out.isoformat(),
                booking.beds_count,
                booking.status.value,
                booking.platform,
                booking.source,
                booking.payment_status,
                booking.guest_name,
                booking.external_id,
                booking.notes,
                created_at.isoformat(),
            )
            for booking in bookings
        ]
        if not rows:
            return []
        with self._session() as conn:
            conn.executemany(
                """
                INSERT INTO Bookings (
                    booking_id, room_id, check_in, check_out, beds_count, status,
                    platform, source, payment_status, guest_name, external_id,
                    notes, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
                """,
                rows,
            )
        created = [self.get_booking(row[0]) for row in rows]
        if any(booking is None for booking in created):
            raise BookingRepositoryError("Inserted bookings could not be read back")
        return [booking for booking in created if booking is not None]

    def update_booking(self, booking_id: str, booking: NewBooking) -> Booking:
        with self._session() as conn:
            cursor = conn.execute(
                """
                UPDATE Bookings
                SET room_id = ?, check_in = ?, check_out = ?, beds_count = ?,
                    status = ?, guest_name = ?, notes = ?, updated_at = ?
                WHERE booking_id = ?;
                """,
                (
                    str(booking.room_id),
                    booking.check_in.isoformat(),
                    booking.check_out.isoformat(),
                    booking.beds_count,
                    booking.status.value,
                    booking.guest_name,
                    booking.notes,
                    self._clock().isoformat(),
                    booking_id,
                ),
            )
            if cursor.rowcount == 0:
                raise BookingRepositoryError(f"Booking {booking_id} does not exist")
        updated = self.get_booking(booking_id)
        if updated is None:
            raise BookingRepositoryError(f"Booking {booking_id} vanished after update")
        return updated

    def cancel_bookings(self, booking_ids: Iterable[str], note: str) -> int:
        """Cancel every listed booking in one transaction."""
        ids = list(booking_ids)
        if not ids:
            return 0
        updated_at = self._clock().isoformat()
        with self._session() as conn:
            cursor = conn.executemany(
                """
                UPDATE Bookings
                SET status = ?, notes = ?, updated_at = ?
                WHERE booking_id = ?;
                """,
                [
                    (BookingStatus.CANCELLED.value, note, updated_at, booking_id)
                    for booking_id in ids
                ],
            )
            return int(cursor.rowcount)

    def delete_booking(self, booking_id: str) -> bool:
        with self._session() as conn:
            cursor = conn.execute(
                "DELETE FROM Bookings WHERE booking_id = ?;",
                (booking_id,),
            )
            return cursor.rowcount > 0

    def delete_overlapping(
        self,
        room_id: str,
        start: date,
        end: date,
        status: BookingStatus,
    ) -> int:
        with self._session() as conn:
            cursor = conn.execute(
                """
                DELETE FROM Bookings
                WHERE room_id = ? AND status = ? AND check_in < ? AND check_out > ?;
                """,
                (str(room_id), status.value, end.isoformat(), start.isoformat()),
            )
            return int(cursor.rowcount)

    def count_bookings(self, status: Optional[BookingStatus] = None) -> int:
        """Return stored booking count for diagnostics and tests."""
        with self._session() as conn:
            if status is None:
                row = conn.execute("SELECT COUNT(*) AS count FROM Bookings;").fetchone()
            else:
                row = conn.execute(
                    "SELECT COUNT(*) AS count FROM Bookings WHERE status = ?;",
                    (status.value,),
                ).fetchone()
        return int(row["count"])
