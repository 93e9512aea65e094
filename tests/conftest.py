"""
Shared fixtures for the academy store tests.
"""

import pytest

from academy.academy_db.repositories import users
from academy.academy_db.storage import InMemoryKeyValueStore


@pytest.fixture(autouse=True)
def fast_password_hashing(monkeypatch):
    """Use the minimum bcrypt cost so account-heavy tests stay quick."""
    monkeypatch.setattr(users, "BCRYPT_ROUNDS", 4)


@pytest.fixture
def store():
    """Fresh in-memory store."""
    kv = InMemoryKeyValueStore()
    yield kv
    kv.close()
