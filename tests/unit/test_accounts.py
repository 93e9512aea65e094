"""
Unit tests for academies, memberships and user accounts.

Tests cover:
- Academy CRUD and the protected default academy
- Membership upsert and the per-user index
- Accounts sub-store, email index and password hashing
"""

import pytest

from academy.academy_db.repositories import (
    AcademyRepository,
    MembershipRepository,
    UserRepository,
    check_password,
    hash_password,
)


class TestAcademyRepository:
    """Tests for AcademyRepository."""

    def test_ensure_default_is_idempotent(self, store):
        repo = AcademyRepository(store)
        first = repo.ensure_default_exists()
        second = repo.ensure_default_exists()
        assert first.id == "default"
        assert second == first
        assert len(repo.list()) == 1

    def test_default_cannot_be_deleted(self, store):
        repo = AcademyRepository(store)
        repo.ensure_default_exists()
        assert repo.delete("default") is False
        assert repo.find("default") is not None

    def test_list_sorted_by_name(self, store):
        repo = AcademyRepository(store)
        repo.create("Zeta")
        repo.create("alpha")
        assert [a.name for a in repo.list()] == ["alpha", "Zeta"]

    def test_deactivate(self, store):
        repo = AcademyRepository(store)
        academy = repo.create("Club", academy_id="club")
        repo.update("club", {"is_active": False, "id": "hijack"})
        assert repo.find("club").is_active is False
        assert repo.first_active_id() is None
        assert academy.id == "club"


class TestMembershipRepository:
    """Tests for MembershipRepository."""

    def test_add_is_upsert(self, store):
        repo = MembershipRepository(store)
        repo.add("a1", "u1", "coach")
        repo.add("a1", "u1", "manager")
        assert repo.get_role("a1", "u1") == "manager"
        assert len(repo.list_members("a1")) == 1
        assert store.keys("academy_member_by_user:u1:") == ["academy_member_by_user:u1:a1"]

    def test_roles_by_academy_in_key_order(self, store):
        repo = MembershipRepository(store)
        repo.add("b", "u1", "coach")
        repo.add("a", "u1", "parent")
        assert list(repo.get_roles_by_academy("u1").items()) == [("a", "parent"), ("b", "coach")]

    def test_remove_all_for_user(self, store):
        repo = MembershipRepository(store)
        repo.add("a1", "u1", "coach")
        repo.add("a2", "u1", "coach")
        repo.add("a1", "u2", "coach")
        assert repo.remove_all_for_user("u1") == 2
        assert repo.list_for_user("u1") == []
        assert repo.get_role("a1", "u2") == "coach"

    def test_dangling_pointer_pruned(self, store):
        repo = MembershipRepository(store)
        repo.add("a1", "u1", "coach")
        store.remove("academy_member:a1:u1")
        assert repo.list_academy_ids_for_user("u1") == []
        assert store.keys("academy_member_by_user:") == []


class TestPasswords:
    """Tests for password hashing."""

    def test_hash_and_check(self):
        encoded = hash_password("s3cret")
        assert encoded.startswith("$2b$04$")
        assert encoded != hash_password("s3cret")
        assert check_password("s3cret", encoded) is True
        assert check_password("wrong", encoded) is False

    def test_malformed_hash(self):
        assert check_password("x", "plain-text") is False
        assert check_password("x", "md5$1$salt$digest") is False
        assert check_password("", hash_password("x")) is False

    def test_explicit_rounds(self):
        assert hash_password("s3cret", rounds=5).startswith("$2b$05$")

    def test_empty_password_rejected(self):
        with pytest.raises(ValueError):
            hash_password("")


class TestUserRepository:
    """Tests for UserRepository."""

    @pytest.fixture
    def users(self, store):
        return UserRepository(store)

    def test_accounts_live_in_sub_store(self, store, users):
        user = users.create("Coach@Example.com", "pw", role="coach")
        assert user.email == "coach@example.com"
        assert store.keys("user:") == []
        assert store.named("accounts").keys("user:") == [f"user:{user.id}"]

    def test_find_by_email_case_insensitive(self, users):
        user = users.create("coach@example.com", "pw")
        assert users.find_by_email("COACH@example.com").id == user.id

    def test_duplicate_email(self, users):
        users.create("coach@example.com", "pw")
        with pytest.raises(ValueError):
            users.create("coach@example.com", "pw2")

    def test_verify_password(self, users):
        users.create("coach@example.com", "pw")
        assert users.verify_password("coach@example.com", "pw") is not None
        assert users.verify_password("coach@example.com", "nope") is None
        assert users.verify_password("missing@example.com", "pw") is None

    def test_inactive_user_cannot_log_in(self, users):
        user = users.create("coach@example.com", "pw")
        users.update(user.id, {"is_active": False})
        assert users.verify_password("coach@example.com", "pw") is None

    def test_email_change_reindexes(self, store, users):
        user = users.create("old@example.com", "pw")
        users.update(user.id, {"email": "New@Example.com", "password": "pw2"})
        assert users.find_by_email("old@example.com") is None
        assert users.find_by_email("new@example.com").id == user.id
        assert users.verify_password("new@example.com", "pw2") is not None
        assert store.named("accounts").keys("user_by_email:") == ["user_by_email:new@example.com"]

    def test_delete_removes_index(self, store, users):
        user = users.create("coach@example.com", "pw")
        assert users.delete(user.id) is True
        assert users.find(user.id) is None
        assert users.find_by_email("coach@example.com") is None
        assert store.named("accounts").keys() == []

    def test_public_dict_hides_hash(self, users):
        user = users.create("coach@example.com", "pw")
        assert "password_hash" not in user.public_dict()

    def test_list_by_role(self, users):
        users.create("a@example.com", "pw", role="admin")
        users.create("b@example.com", "pw", role="kid")
        assert [u.email for u in users.list(role="admin")] == ["a@example.com"]
