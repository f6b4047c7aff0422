"""
Participant Store Module - Event Check-in

Typed access to the ``participants`` and ``attendance`` tables. Rows coming
out of SQLite are converted into dataclasses here, so the rest of the
application never handles raw rows. A row that is missing a required field
or carries an unparsable timestamp is reported as a StoreError.

All timestamps are stored as ISO-8601 UTC strings with microseconds, which
keeps lexical ordering equal to chronological ordering.
"""

import sqlite3
import logging
import uuid
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from checkin.modules.errors import StoreError

ACTION_CHECK_IN = 'check_in'
ACTION_CHECK_OUT = 'check_out'

_OPEN_ATTENDANCE_SQL = """SELECT id, participant_id, check_in_at, check_out_at
                          FROM attendance
                          WHERE participant_id = ? AND check_out_at IS NULL
                          ORDER BY check_in_at DESC
                          LIMIT 1"""


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec='microseconds')


def parse_timestamp(value: Any, field_name: str) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value))
        except (TypeError, ValueError) as e:
            raise StoreError(f"Invalid timestamp in field '{field_name}': {value!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _required(row: Dict[str, Any], field_name: str) -> Any:
    value = row.get(field_name)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise StoreError(f"Record is missing required field '{field_name}'")
    return value


@dataclass
class Participant:
    """A registered attendee."""
    id: str
    full_name: str
    email: str
    phone: Optional[str]
    organization: Optional[str]
    category: Optional[str]
    qr_code: str
    created_at: datetime

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Participant':
        return cls(
            id=str(_required(row, 'id')),
            full_name=str(_required(row, 'full_name')),
            email=str(_required(row, 'email')),
            phone=row.get('phone') or None,
            organization=row.get('organization') or None,
            category=row.get('category') or None,
            qr_code=str(_required(row, 'qr_code')),
            created_at=parse_timestamp(_required(row, 'created_at'), 'created_at'),
        )

    def to_dict(self, include_qr: bool = False) -> Dict[str, Any]:
        data = asdict(self)
        data['created_at'] = format_timestamp(self.created_at)
        if not include_qr:
            data.pop('qr_code')
        return data


@dataclass
class AttendanceRecord:
    """A single check-in, optionally closed by a check-out."""
    id: str
    participant_id: str
    check_in_at: datetime
    check_out_at: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.check_out_at is None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'AttendanceRecord':
        check_out = row.get('check_out_at')
        return cls(
            id=str(_required(row, 'id')),
            participant_id=str(_required(row, 'participant_id')),
            check_in_at=parse_timestamp(_required(row, 'check_in_at'), 'check_in_at'),
            check_out_at=parse_timestamp(check_out, 'check_out_at') if check_out else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'participant_id': self.participant_id,
            'check_in_at': format_timestamp(self.check_in_at),
            'check_out_at': format_timestamp(self.check_out_at) if self.check_out_at else None,
        }


@dataclass
class AttendanceEntry:
    """Attendance record joined with the participant summary fields."""
    record: AttendanceRecord
    full_name: str
    email: str
    organization: Optional[str]

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'AttendanceEntry':
        return cls(
            record=AttendanceRecord.from_row(row),
            full_name=str(_required(row, 'full_name')),
            email=str(_required(row, 'email')),
            organization=row.get('organization') or None,
        )


class ParticipantStore:
    """Reads and writes participants and attendance records."""

    PARTICIPANT_COLUMNS = "id, full_name, email, phone, organization, category, qr_code, created_at"

    def __init__(self, database_manager):
        self.db = database_manager
        self.logger = logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Participants
    # ------------------------------------------------------------------
    def create_participant(self, participant: Participant) -> Participant:
        try:
            self.db.execute_update(
                """INSERT INTO participants (id, full_name, email, phone, organization,
                                             category, qr_code, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    participant.id,
                    participant.full_name,
                    participant.email,
                    participant.phone,
                    participant.organization,
                    participant.category,
                    participant.qr_code,
                    format_timestamp(participant.created_at),
                )
            )
        except sqlite3.Error as e:
            raise StoreError(f"Failed to save participant {participant.id}") from e
        return participant

    def get_participant(self, participant_id: str) -> Optional[Participant]:
        try:
            row = self.db.execute_query(
                f"SELECT {self.PARTICIPANT_COLUMNS} FROM participants WHERE id = ?",
                (participant_id,),
                fetch_all=False
            )
        except sqlite3.Error as e:
            raise StoreError(f"Failed to load participant {participant_id}") from e
        return Participant.from_row(row) if row else None

    def list_participants(self) -> List[Participant]:
        try:
            rows = self.db.execute_query(
                f"""SELECT {self.PARTICIPANT_COLUMNS} FROM participants
                    ORDER BY created_at DESC, id DESC"""
            )
        except sqlite3.Error as e:
            raise StoreError("Failed to load participants") from e
        return [Participant.from_row(row) for row in rows]

    def delete_participant(self, participant_id: str) -> bool:
        """Delete a participant; its attendance records go with it."""
        try:
            deleted = self.db.execute_update(
                "DELETE FROM participants WHERE id = ?",
                (participant_id,)
            )
        except sqlite3.Error as e:
            raise StoreError(f"Failed to delete participant {participant_id}") from e
        return deleted > 0

    # ------------------------------------------------------------------
    # Attendance
    # ------------------------------------------------------------------
    def find_open_attendance(self, participant_id: str) -> Optional[AttendanceRecord]:
        try:
            row = self.db.execute_query(_OPEN_ATTENDANCE_SQL, (participant_id,), fetch_all=False)
        except sqlite3.Error as e:
            raise StoreError(f"Failed to load attendance for {participant_id}") from e
        return AttendanceRecord.from_row(row) if row else None

    def record_check_in(self, participant_id: str, at: Optional[datetime] = None) -> AttendanceRecord:
        """Insert a new open attendance record."""
        record = AttendanceRecord(
            id=str(uuid.uuid4()),
            participant_id=participant_id,
            check_in_at=at or utc_now(),
        )
        try:
            with self.db.transaction() as conn:
                self._insert_attendance(conn, record)
        except sqlite3.Error as e:
            raise StoreError(f"Failed to record attendance for {participant_id}") from e
        return record

    def toggle_attendance(self, participant_id: str,
                          at: Optional[datetime] = None) -> Tuple[str, AttendanceRecord]:
        """
        Close the participant's open attendance record, or open a new one.

        The lookup and the write share one immediate transaction, so a
        participant never ends up with two open records.

        Returns:
            Tuple[str, AttendanceRecord]: ('check_in' | 'check_out', record)
        """
        at = at or utc_now()
        try:
            with self.db.transaction(immediate=True) as conn:
                row = conn.execute(_OPEN_ATTENDANCE_SQL, (participant_id,)).fetchone()

                if row:
                    record = AttendanceRecord.from_row(dict(row))
                    record.check_out_at = at
                    conn.execute(
                        "UPDATE attendance SET check_out_at = ? WHERE id = ?",
                        (format_timestamp(at), record.id)
                    )
                    return ACTION_CHECK_OUT, record

                record = AttendanceRecord(
                    id=str(uuid.uuid4()),
                    participant_id=participant_id,
                    check_in_at=at,
                )
                self._insert_attendance(conn, record)
                return ACTION_CHECK_IN, record
        except sqlite3.Error as e:
            raise StoreError(f"Failed to toggle attendance for {participant_id}") from e

    def list_attendance(self) -> List[AttendanceEntry]:
        try:
            rows = self.db.execute_query(
                """SELECT a.id, a.participant_id, a.check_in_at, a.check_out_at,
                          p.full_name, p.email, p.organization
                   FROM attendance a
                   JOIN participants p ON p.id = a.participant_id
                   ORDER BY a.check_in_at DESC, a.id DESC"""
            )
        except sqlite3.Error as e:
            raise StoreError("Failed to load attendance") from e
        return [AttendanceEntry.from_row(row) for row in rows]

    def list_attendance_for(self, participant_id: str) -> List[AttendanceRecord]:
        try:
            rows = self.db.execute_query(
                """SELECT id, participant_id, check_in_at, check_out_at
                   FROM attendance
                   WHERE participant_id = ?
                   ORDER BY check_in_at ASC""",
                (participant_id,)
            )
        except sqlite3.Error as e:
            raise StoreError(f"Failed to load attendance for {participant_id}") from e
        return [AttendanceRecord.from_row(row) for row in rows]

    # ------------------------------------------------------------------
    # Counts
    # ------------------------------------------------------------------
    def count_participants(self) -> int:
        return self._count("SELECT COUNT(*) AS total FROM participants")

    def count_attendance(self) -> int:
        return self._count("SELECT COUNT(*) AS total FROM attendance")

    def count_open_attendance(self) -> int:
        return self._count(
            "SELECT COUNT(DISTINCT participant_id) AS total FROM attendance WHERE check_out_at IS NULL"
        )

    def count_attendees(self) -> int:
        return self._count("SELECT COUNT(DISTINCT participant_id) AS total FROM attendance")

    def _count(self, query: str) -> int:
        try:
            result = self.db.execute_query(query, fetch_all=False)
        except sqlite3.Error as e:
            raise StoreError("Failed to count records") from e
        return int(result['total']) if result else 0

    @staticmethod
    def _insert_attendance(conn, record: AttendanceRecord) -> None:
        conn.execute(
            """INSERT INTO attendance (id, participant_id, check_in_at, check_out_at)
               VALUES (?, ?, ?, ?)""",
            (
                record.id,
                record.participant_id,
                format_timestamp(record.check_in_at),
                format_timestamp(record.check_out_at) if record.check_out_at else None,
            )
        )
