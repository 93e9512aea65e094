"""
Program attendance, one record per (program, session date, player).

Keys:
    program_attendance:{academyId}:{programId}:{date}:{userId}
    program_attendance_by_user:{academyId}:{programId}:{userId}:{date} -> date

Because the date is part of the key, saving the same day twice overwrites
the earlier record; the record id and created_at are carried over.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from ..keyspace import composite_key, index_key, index_name, index_prefix
from ..ledger import normalize_session_date
from ..models import ProgramAttendanceRecord
from ..storage.base import generate_id
from .base import BaseRepository

logger = logging.getLogger(__name__)

ATTENDANCE = "program_attendance"
BY_USER = index_name(ATTENDANCE, "user")


class ProgramAttendanceRepository(BaseRepository[ProgramAttendanceRecord]):
    model = ProgramAttendanceRecord

    def _key(self, academy_id: str, program_id: str, session_date: str, user_id: str) -> str:
        return composite_key(ATTENDANCE, academy_id, program_id, session_date, user_id)

    def _index(self, academy_id: str, program_id: str, user_id: str, session_date: str) -> str:
        return index_key(BY_USER, [academy_id, program_id, user_id], session_date)

    def _program_prefix(self, academy_id: str, program_id: str) -> str:
        return composite_key(ATTENDANCE, academy_id, program_id) + ":"

    def get_for_date(
        self, academy_id: str, program_id: str, session_date: str
    ) -> list[ProgramAttendanceRecord]:
        """Attendance of one session, sorted by user id."""
        day = normalize_session_date(session_date)
        prefix = composite_key(ATTENDANCE, academy_id, program_id, day) + ":"
        return sorted((r for _, r in self._scan_prefix(prefix)), key=lambda r: r.user_id)

    def upsert(
        self,
        academy_id: str,
        program_id: str,
        user_id: str,
        coach_id: str,
        session_date: str,
        present: bool,
        notes: str | None = None,
    ) -> ProgramAttendanceRecord:
        day = normalize_session_date(session_date)
        key = self._key(academy_id, program_id, day, user_id)
        existing = self._load(key)
        now = self._now()

        record = ProgramAttendanceRecord(
            id=existing.id if existing else generate_id(),
            academy_id=academy_id,
            program_id=program_id,
            user_id=user_id,
            coach_id=coach_id,
            session_date=day,
            present=bool(present),
            notes=notes,
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )
        if existing is None:
            self._put_indexes([(self._index(academy_id, program_id, user_id, day), day)])
        return self._save(key, record)

    def save_batch(
        self,
        academy_id: str,
        program_id: str,
        coach_id: str,
        session_date: str,
        entries: Iterable[dict[str, Any]],
    ) -> list[ProgramAttendanceRecord]:
        """Upsert attendance for several players of one session.

        Each entry has user_id, present and an optional notes field.
        """
        day = normalize_session_date(session_date)
        return [
            self.upsert(
                academy_id,
                program_id,
                entry["user_id"],
                coach_id,
                day,
                bool(entry.get("present")),
                entry.get("notes"),
            )
            for entry in entries
        ]

    def list_by_user(
        self, academy_id: str, program_id: str, user_id: str
    ) -> list[ProgramAttendanceRecord]:
        """A player's attendance in a program, newest first."""
        records = self._scan_index(
            index_prefix(BY_USER, [academy_id, program_id, user_id]),
            lambda _key, day: self._key(academy_id, program_id, day, user_id),
        )
        return sorted(records, key=lambda r: r.session_date, reverse=True)

    def list_by_program(self, academy_id: str, program_id: str) -> list[ProgramAttendanceRecord]:
        """Attendance of a program, newest first, then by user id."""
        records = [r for _, r in self._scan_prefix(self._program_prefix(academy_id, program_id))]
        records.sort(key=lambda r: r.user_id)
        records.sort(key=lambda r: r.session_date, reverse=True)
        return records

    def delete_for_user_in_program(self, academy_id: str, program_id: str, user_id: str) -> int:
        # Scan primaries rather than the index so records written before the
        # index existed are removed too.
        count = 0
        for key, record in list(self._scan_prefix(self._program_prefix(academy_id, program_id))):
            if record.user_id != user_id:
                continue
            if self._remove(key):
                count += 1
            self._remove(self._index(academy_id, program_id, user_id, record.session_date))
        leftover = index_prefix(BY_USER, [academy_id, program_id, user_id])
        self._remove_keys(key for key, _ in self._scan_pointers(leftover))
        return count

    def delete_for_program(self, academy_id: str, program_id: str) -> int:
        count = 0
        for key, record in list(self._scan_prefix(self._program_prefix(academy_id, program_id))):
            if self._remove(key):
                count += 1
            self._remove(self._index(academy_id, program_id, record.user_id, record.session_date))
        return count
