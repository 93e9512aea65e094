"""
Programs and their ordered levels.

Invariants:
    - Levels of a program carry a dense order 1..N after every create,
      delete and move
    - update() never changes a record's academy_id (nor a level's
      program_id or order)
    - Pass rules hold only non-negative finite numbers
"""

from __future__ import annotations

import logging
from typing import Any

from ..keyspace import primary_key, primary_prefix
from ..models import Program, ProgramLevel, sanitize_pass_rules
from ..storage.base import generate_id
from .base import BaseRepository, apply_changes

logger = logging.getLogger(__name__)

PROGRAM = "program"
PROGRAM_LEVEL = "program_level"


class ProgramRepository(BaseRepository[Program]):
    model = Program

    def create(
        self,
        academy_id: str,
        name: str,
        name_ar: str = "",
        description: str | None = None,
        description_ar: str | None = None,
        image: str | None = None,
        is_active: bool = True,
    ) -> Program:
        now = self._now()
        program = Program(
            id=generate_id(),
            academy_id=academy_id,
            name=name,
            name_ar=name_ar,
            description=description,
            description_ar=description_ar,
            image=image,
            is_active=is_active,
            created_at=now,
            updated_at=now,
        )
        logger.info(f"Created program {program.id}", extra={"academy_id": academy_id})
        return self._save(primary_key(PROGRAM, program.id), program)

    def find(self, program_id: str) -> Program | None:
        return self._load(primary_key(PROGRAM, program_id))

    def list(self, academy_id: str, active_only: bool = False) -> list[Program]:
        """Programs of an academy, most recently updated first."""
        programs = [
            p
            for _, p in self._scan_prefix(primary_prefix(PROGRAM))
            if p.academy_id == academy_id and (not active_only or p.is_active)
        ]
        return sorted(programs, key=lambda p: p.updated_at, reverse=True)

    def update(self, program_id: str, changes: dict[str, Any]) -> Program | None:
        program = self.find(program_id)
        if program is None:
            return None
        apply_changes(program, changes, protected=("id", "academy_id", "created_at"))
        program.updated_at = self._now()
        return self._save(primary_key(PROGRAM, program_id), program)

    def delete(self, program_id: str) -> bool:
        """Remove the program primary only. Use ProgramCascade for dependents."""
        return self._remove(primary_key(PROGRAM, program_id))


class ProgramLevelRepository(BaseRepository[ProgramLevel]):
    model = ProgramLevel

    def _key(self, level_id: str) -> str:
        return primary_key(PROGRAM_LEVEL, level_id)

    def create(
        self,
        academy_id: str,
        program_id: str,
        name: str,
        name_ar: str = "",
        description: str | None = None,
        description_ar: str | None = None,
        image: str | None = None,
        pass_rules: dict[str, Any] | None = None,
    ) -> ProgramLevel:
        """Append a level at the end of the program's order.

        Existing levels are re-packed first so orders stay 1..N.
        """
        existing = self._repack(self.list(academy_id, program_id))
        now = self._now()
        level = ProgramLevel(
            id=generate_id(),
            academy_id=academy_id,
            program_id=program_id,
            order=len(existing) + 1,
            name=name,
            name_ar=name_ar,
            description=description,
            description_ar=description_ar,
            image=image,
            pass_rules=sanitize_pass_rules(pass_rules),
            created_at=now,
            updated_at=now,
        )
        return self._save(self._key(level.id), level)

    def find(self, level_id: str) -> ProgramLevel | None:
        return self._load(self._key(level_id))

    def list(self, academy_id: str, program_id: str) -> list[ProgramLevel]:
        """Levels of a program sorted by order."""
        levels = [
            lvl
            for _, lvl in self._scan_prefix(primary_prefix(PROGRAM_LEVEL))
            if lvl.program_id == program_id and lvl.academy_id == academy_id
        ]
        return sorted(levels, key=lambda lvl: (lvl.order, lvl.created_at))

    def update(self, level_id: str, changes: dict[str, Any]) -> ProgramLevel | None:
        level = self.find(level_id)
        if level is None:
            return None
        changes = dict(changes)
        rules = changes.pop("pass_rules", None)
        apply_changes(
            level,
            changes,
            protected=("id", "academy_id", "program_id", "order", "created_at"),
        )
        if rules is not None:
            level.pass_rules = sanitize_pass_rules(rules)
        level.updated_at = self._now()
        return self._save(self._key(level_id), level)

    def _repack(self, levels: list[ProgramLevel]) -> list[ProgramLevel]:
        now = self._now()
        for position, lvl in enumerate(levels, start=1):
            if lvl.order != position:
                lvl.order = position
                lvl.updated_at = now
                self._save(self._key(lvl.id), lvl)
        return levels

    def delete(self, level_id: str) -> bool:
        """Delete a level and close the gap in the program's order."""
        level = self.find(level_id)
        if level is None:
            return False
        self._remove(self._key(level_id))
        self._repack(self.list(level.academy_id, level.program_id))
        return True

    def delete_for_program(self, academy_id: str, program_id: str) -> int:
        return self._remove_keys(self._key(lvl.id) for lvl in self.list(academy_id, program_id))

    def move(self, level_id: str, direction: str) -> list[ProgramLevel] | None:
        """Swap a level with its neighbour.

        Args:
            level_id: Level to move
            direction: "up" (towards order 1) or "down"

        Returns:
            The program's levels in their new order, or None if the level
            does not exist. Moving past either end is a no-op.
        """
        if direction not in ("up", "down"):
            raise ValueError(f"Unknown direction: {direction}")
        level = self.find(level_id)
        if level is None:
            return None

        levels = self.list(level.academy_id, level.program_id)
        idx = next(i for i, lvl in enumerate(levels) if lvl.id == level_id)
        other = idx - 1 if direction == "up" else idx + 1
        if 0 <= other < len(levels):
            levels[idx], levels[other] = levels[other], levels[idx]
        return self._repack(levels)
