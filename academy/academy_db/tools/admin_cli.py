"""
Admin CLI for the academy store.

Commands:
- reset: Wipe the store and reseed the bootstrap admin account
- create-admin: Create (or promote) an admin account
- list-users: Print accounts without password hashes
- remove-player: Remove a player from a program with their program data
- delete-program: Delete a program with its dependent records
- cleanup-player-assessments: Delete every assessment of a player

Usage:
    academy-admin reset --yes
    academy-admin create-admin --email ops@example.com --password s3cret
    academy-admin remove-player <academy_id> <program_id> <user_id>

Output is JSON on stdout; failures exit non-zero.

Invariants:
    - reset is the only operation that bypasses the cascade paths; it
      closes the handle before deleting the directory
    - reset refuses to run without --yes

How to change safely:
    - Keep output JSON keys stable, scripts parse them
"""

from __future__ import annotations

import argparse
import json
import logging
import shutil
import sys
from pathlib import Path
from typing import Any

from ..cascade import ProgramCascade
from ..config import AppConfig
from ..errors import AcademyStoreError
from ..repositories import AssessmentRepository, UserRepository
from ..roles import GlobalRole
from ..storage import close_store, open_store
from ..storage.base import KeyValueStore

logger = logging.getLogger(__name__)


class AdminCLI:
    """Operator commands over one store handle.

    Example:
        >>> cli = AdminCLI(config)
        >>> cli.remove_player("default", "p1", "u1")
        {'success': True, ...}
    """

    def __init__(self, config: AppConfig, store: KeyValueStore | None = None) -> None:
        self.config = config
        self._store = store

    @property
    def store(self) -> KeyValueStore:
        if self._store is None or not self._store.is_open:
            self._store = open_store(self.config.storage)
        return self._store

    def _users(self) -> UserRepository:
        return UserRepository(self.store, self.config.bootstrap.default_academy_id)

    def reset(self) -> dict[str, Any]:
        """Delete the data directory and reseed exactly one admin account."""
        data_dir = Path(self.config.storage.data_dir)
        if self._store is not None:
            self._store.close()
            self._store = None
        close_store()

        shutil.rmtree(data_dir, ignore_errors=True)
        data_dir.mkdir(parents=True, exist_ok=True)
        logger.warning(f"Store at {data_dir} wiped", extra={"data_dir": str(data_dir)})

        admin = self.create_admin(
            self.config.bootstrap.admin_email,
            self.config.bootstrap.admin_password,
            username=self.config.bootstrap.admin_username,
        )
        return {"success": True, "data_dir": str(data_dir), "admin": admin["user"]}

    def create_admin(
        self,
        email: str,
        password: str,
        username: str = "admin",
        full_name: str = "System Administrator",
    ) -> dict[str, Any]:
        users = self._users()
        existing = users.find_by_email(email)
        if existing is not None:
            if existing.role != GlobalRole.ADMIN.value:
                existing = users.update(existing.id, {"role": GlobalRole.ADMIN.value})
            return {"success": True, "created": False, "user": existing.public_dict()}
        user = users.create(
            email=email,
            password=password,
            role=GlobalRole.ADMIN.value,
            username=username,
            full_name=full_name,
        )
        return {"success": True, "created": True, "user": user.public_dict()}

    def list_users(self, role: str | None = None) -> dict[str, Any]:
        users = self._users().list(role=role)
        return {"success": True, "count": len(users), "users": [u.public_dict() for u in users]}

    def remove_player(self, academy_id: str, program_id: str, user_id: str) -> dict[str, Any]:
        cascade = ProgramCascade(self.store, self.config.bootstrap.default_academy_id)
        report = cascade.remove_player_from_program(academy_id, program_id, user_id)
        return {
            "success": True,
            "academy_id": academy_id,
            "program_id": program_id,
            "user_id": user_id,
            **report.to_dict(),
        }

    def delete_program(self, academy_id: str, program_id: str) -> dict[str, Any]:
        cascade = ProgramCascade(self.store, self.config.bootstrap.default_academy_id)
        program = cascade.programs.find(program_id)
        if program is not None and program.academy_id != academy_id:
            return {"success": False, "error": "Program belongs to another academy"}
        report = cascade.delete_program(academy_id, program_id)
        return {"success": True, "academy_id": academy_id, "program_id": program_id, **report.to_dict()}

    def cleanup_player_assessments(self, academy_id: str, player_id: str) -> dict[str, Any]:
        assessments = AssessmentRepository(self.store, self.config.bootstrap.default_academy_id)
        deleted = assessments.delete_for_player(academy_id, player_id)
        return {"success": True, "academy_id": academy_id, "player_id": player_id, "deleted": deleted}

    def close(self) -> None:
        close_store()
        self._store = None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="academy-admin", description="Academy store admin tool")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    reset_parser = subparsers.add_parser("reset", help="Wipe the store and reseed the admin account")
    reset_parser.add_argument("--yes", action="store_true", help="Confirm the destructive reset")

    admin_parser = subparsers.add_parser("create-admin", help="Create or promote an admin account")
    admin_parser.add_argument("--email", required=True)
    admin_parser.add_argument("--password", required=True)
    admin_parser.add_argument("--username", default="admin")
    admin_parser.add_argument("--full-name", default="System Administrator")

    users_parser = subparsers.add_parser("list-users", help="List accounts")
    users_parser.add_argument("--role", choices=[r.value for r in GlobalRole])

    remove_parser = subparsers.add_parser("remove-player", help="Remove a player from a program")
    remove_parser.add_argument("academy_id")
    remove_parser.add_argument("program_id")
    remove_parser.add_argument("user_id")

    delete_parser = subparsers.add_parser("delete-program", help="Delete a program and its records")
    delete_parser.add_argument("academy_id")
    delete_parser.add_argument("program_id")

    cleanup_parser = subparsers.add_parser(
        "cleanup-player-assessments", help="Delete all assessments of a player"
    )
    cleanup_parser.add_argument("academy_id")
    cleanup_parser.add_argument("player_id")

    return parser


def run(args: argparse.Namespace, cli: AdminCLI) -> dict[str, Any]:
    if args.command == "reset":
        if not args.yes:
            return {"success": False, "error": "Refusing to reset without --yes"}
        return cli.reset()
    if args.command == "create-admin":
        return cli.create_admin(args.email, args.password, args.username, args.full_name)
    if args.command == "list-users":
        return cli.list_users(args.role)
    if args.command == "remove-player":
        return cli.remove_player(args.academy_id, args.program_id, args.user_id)
    if args.command == "delete-program":
        return cli.delete_program(args.academy_id, args.program_id)
    if args.command == "cleanup-player-assessments":
        return cli.cleanup_player_assessments(args.academy_id, args.player_id)
    raise ValueError(f"Unknown command: {args.command}")


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    try:
        config = AppConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    cli = AdminCLI(config)
    try:
        result = run(args, cli)
    except (AcademyStoreError, ValueError) as e:
        logger.error(f"Command {args.command} failed: {e}")
        result = {"success": False, "error": str(e)}
    finally:
        cli.close()

    print(json.dumps(result, indent=2, sort_keys=True))
    sys.exit(0 if result.get("success") else 1)


if __name__ == "__main__":
    main()
