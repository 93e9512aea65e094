"""
Player assessment sessions.

Keys:
    assessment_session:{id}
    assessment_by_player:{academyId}:{playerId}:{id} -> id
    assessment_by_program_player:{academyId}:{programId}:{playerId}:{id} -> id
        (only for sessions scoped to a program)

Invariants:
    - Sessions are created locked; update() refuses locked sessions while
      update_notes() is always allowed
    - na_score is recomputed whenever tests change
    - Deleting a session removes the primary first, then both index entries
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from ..errors import AssessmentLockedError
from ..keyspace import index_key, index_name, index_prefix, primary_key
from ..ledger import normalize_session_date
from ..models import AssessmentSession, calculate_na_score
from ..storage.base import generate_id
from .base import BaseRepository

logger = logging.getLogger(__name__)

SESSION = "assessment_session"
ASSESSMENT = "assessment"
BY_PLAYER = index_name(ASSESSMENT, "player")
BY_PROGRAM_PLAYER = index_name(ASSESSMENT, "program_player")


def _newest_first(sessions: list[AssessmentSession]) -> list[AssessmentSession]:
    return sorted(sessions, key=lambda s: (s.session_date, s.created_at), reverse=True)


class AssessmentRepository(BaseRepository[AssessmentSession]):
    model = AssessmentSession

    def _key(self, session_id: str) -> str:
        return primary_key(SESSION, session_id)

    def _index_keys(self, session: AssessmentSession) -> list[str]:
        keys = [index_key(BY_PLAYER, [session.academy_id, session.player_id], session.id)]
        if session.program_id:
            keys.append(
                index_key(
                    BY_PROGRAM_PLAYER,
                    [session.academy_id, session.program_id, session.player_id],
                    session.id,
                )
            )
        return keys

    def create(
        self,
        academy_id: str,
        player_id: str,
        entered_by: str,
        tests: dict[str, Any],
        session_date: str | None = None,
        program_id: str | None = None,
        notes: str | None = None,
        test_notes: dict[str, str] | None = None,
    ) -> AssessmentSession:
        """Create a locked assessment session."""
        now = self._now()
        session = AssessmentSession(
            id=generate_id(),
            academy_id=academy_id,
            player_id=player_id,
            program_id=program_id,
            session_date=normalize_session_date(session_date),
            entered_by=entered_by,
            tests=dict(tests),
            na_score=calculate_na_score(tests),
            notes=notes,
            test_notes=test_notes,
            is_locked=True,
            locked_at=now,
            created_at=now,
            updated_at=now,
        )
        self._put_indexes((key, session.id) for key in self._index_keys(session))
        return self._save(self._key(session.id), session)

    def find(self, session_id: str) -> AssessmentSession | None:
        return self._load(self._key(session_id))

    def list_by_player(self, academy_id: str, player_id: str) -> list[AssessmentSession]:
        """Sessions of a player, newest session date first."""
        return _newest_first(
            self._scan_index(
                index_prefix(BY_PLAYER, [academy_id, player_id]),
                lambda _key, session_id: self._key(session_id),
            )
        )

    def list_by_player_in_program(
        self, academy_id: str, program_id: str, player_id: str
    ) -> list[AssessmentSession]:
        return _newest_first(
            self._scan_index(
                index_prefix(BY_PROGRAM_PLAYER, [academy_id, program_id, player_id]),
                lambda _key, session_id: self._key(session_id),
            )
        )

    def latest_for_player(self, academy_id: str, player_id: str) -> AssessmentSession | None:
        sessions = self.list_by_player(academy_id, player_id)
        return sessions[0] if sessions else None

    def update(
        self,
        session_id: str,
        tests: dict[str, Any] | None = None,
        session_date: str | None = None,
        notes: str | None = None,
        test_notes: dict[str, str] | None = None,
    ) -> AssessmentSession | None:
        """Change an unlocked session. Tests are merged over the current ones.

        Raises:
            AssessmentLockedError: If the session is locked
        """
        session = self.find(session_id)
        if session is None:
            return None
        if session.is_locked:
            raise AssessmentLockedError(session_id)

        session.tests = {**session.tests, **(tests or {})}
        session.na_score = calculate_na_score(session.tests)
        if session_date is not None:
            session.session_date = normalize_session_date(session_date)
        if notes is not None:
            session.notes = notes
        if test_notes is not None:
            session.test_notes = test_notes
        session.updated_at = self._now()
        return self._save(self._key(session_id), session)

    def update_notes(
        self,
        session_id: str,
        notes: str | None = None,
        test_notes: dict[str, str] | None = None,
    ) -> AssessmentSession | None:
        """Change only the note fields; allowed while locked."""
        session = self.find(session_id)
        if session is None:
            return None
        if notes is not None:
            session.notes = notes
        if test_notes is not None:
            session.test_notes = test_notes
        session.updated_at = self._now()
        return self._save(self._key(session_id), session)

    def lock(self, session_id: str) -> AssessmentSession | None:
        session = self.find(session_id)
        if session is None or session.is_locked:
            return session
        now = self._now()
        session.is_locked = True
        session.locked_at = now
        session.updated_at = now
        return self._save(self._key(session_id), session)

    def unlock(self, session_id: str) -> AssessmentSession | None:
        session = self.find(session_id)
        if session is None or not session.is_locked:
            return session
        session.is_locked = False
        session.updated_at = self._now()
        logger.info(f"Unlocked assessment {session_id}", extra={"session_id": session_id})
        return self._save(self._key(session_id), session)

    def delete(self, session_id: str) -> bool:
        session = self.find(session_id)
        if session is None:
            return False
        self._remove(self._key(session_id))
        self._remove_keys(self._index_keys(session))
        return True

    def _delete_from_index(self, prefix: str) -> int:
        pointers = self._scan_pointers(prefix)
        deleted = self._delete_ids(value for _, value in pointers)
        # Pointers left behind reference sessions that were already gone.
        self._remove_keys(key for key, _ in pointers)
        return deleted

    def _delete_ids(self, ids: Iterable[Any]) -> int:
        unique = list(dict.fromkeys(i for i in ids if isinstance(i, str)))
        return sum(1 for session_id in unique if self.delete(session_id))

    def delete_for_player_in_program(self, academy_id: str, program_id: str, player_id: str) -> int:
        return self._delete_from_index(
            index_prefix(BY_PROGRAM_PLAYER, [academy_id, program_id, player_id])
        )

    def delete_for_program(self, academy_id: str, program_id: str) -> int:
        return self._delete_from_index(
            index_prefix(BY_PROGRAM_PLAYER, [academy_id, program_id])
        )

    def delete_for_player(self, academy_id: str, player_id: str) -> int:
        return self._delete_from_index(index_prefix(BY_PLAYER, [academy_id, player_id]))
