"""
Integration tests for the admin CLI.

Tests cover:
- Destructive reset reseeding exactly one admin
- Player removal and program deletion through the cascade
- Exit codes and JSON output
"""

import json
import os

import pytest

from academy.academy_db.config import AppConfig, StorageConfig
from academy.academy_db.repositories import (
    AssessmentRepository,
    ProgramEnrollmentRepository,
    ProgramRepository,
    UserRepository,
)
from academy.academy_db.storage import close_store, open_store
from academy.academy_db.tools.admin_cli import AdminCLI, main


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    path = tmp_path / "academy-db"
    monkeypatch.setenv("ACADEMY_DATA_DIR", str(path))
    monkeypatch.setenv("ACADEMY_ADMIN_EMAIL", "root@example.com")
    monkeypatch.setenv("ACADEMY_ADMIN_PASSWORD", "change-me")
    yield path
    close_store()


@pytest.fixture
def config(data_dir):
    return AppConfig(storage=StorageConfig(data_dir=str(data_dir)))


def run_cli(capsys, *argv):
    with pytest.raises(SystemExit) as exc_info:
        main(list(argv))
    return exc_info.value.code, json.loads(capsys.readouterr().out)


class TestReset:
    """Tests for the reset command."""

    def test_requires_confirmation(self, capsys, data_dir):
        code, output = run_cli(capsys, "reset")
        assert code == 1
        assert output["success"] is False

    def test_reset_wipes_and_reseeds(self, capsys, data_dir, config):
        store = open_store(config.storage)
        UserRepository(store).create("someone@example.com", "pw", role="coach")
        ProgramRepository(store).create("a1", "P")
        close_store()
        (data_dir / "stray.txt").write_text("leftover")

        code, output = run_cli(capsys, "reset", "--yes")

        assert code == 0
        assert output["admin"]["email"] == "root@example.com"
        assert not os.path.exists(data_dir / "stray.txt")

        store = open_store(config.storage)
        users = UserRepository(store).list()
        assert [(u.email, u.role, u.full_name) for u in users] == [
            ("root@example.com", "admin", "System Administrator")
        ]
        assert UserRepository(store).verify_password("root@example.com", "change-me") is not None
        assert ProgramRepository(store).list("a1") == []


class TestCommands:
    """Tests for the other commands."""

    def test_create_admin_promotes_existing(self, capsys, config):
        store = open_store(config.storage)
        user = UserRepository(store).create("coach@example.com", "pw", role="coach")
        close_store()

        code, output = run_cli(capsys, "create-admin", "--email", "coach@example.com", "--password", "x")

        assert code == 0
        assert output["created"] is False
        assert output["user"]["id"] == user.id
        assert output["user"]["role"] == "admin"

    def test_list_users(self, capsys, config):
        cli = AdminCLI(config)
        cli.create_admin("root@example.com", "pw")
        cli.close()

        code, output = run_cli(capsys, "list-users", "--role", "admin")
        assert code == 0
        assert output["count"] == 1
        assert "password_hash" not in output["users"][0]

    def test_remove_player(self, capsys, config):
        store = open_store(config.storage)
        program = ProgramRepository(store).create("a1", "P")
        ProgramEnrollmentRepository(store).upsert("a1", program.id, "kid1")
        AssessmentRepository(store).create("a1", "kid1", "c1", {"s": 1}, program_id=program.id)
        close_store()

        code, output = run_cli(capsys, "remove-player", "a1", program.id, "kid1")

        assert code == 0
        assert output["enrollments"] == 1
        assert output["assessments"] == 1
        store = open_store(config.storage)
        assert ProgramEnrollmentRepository(store).find("a1", program.id, "kid1") is None

    def test_delete_program_wrong_academy(self, capsys, config):
        store = open_store(config.storage)
        program = ProgramRepository(store).create("a1", "P")
        close_store()

        code, output = run_cli(capsys, "delete-program", "a2", program.id)
        assert code == 1
        assert output["success"] is False

        code, output = run_cli(capsys, "delete-program", "a1", program.id)
        assert code == 0
        assert output["program"] is True

    def test_cleanup_player_assessments(self, capsys, config):
        store = open_store(config.storage)
        AssessmentRepository(store).create("a1", "kid1", "c1", {"s": 1})
        AssessmentRepository(store).create("a1", "kid1", "c1", {"s": 2}, program_id="p1")
        close_store()

        code, output = run_cli(capsys, "cleanup-player-assessments", "a1", "kid1")
        assert code == 0
        assert output["deleted"] == 2
