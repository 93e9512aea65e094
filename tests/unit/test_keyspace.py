"""
Unit tests for the key-space helpers.
"""

import pytest

from academy.academy_db.keyspace import (
    composite_key,
    index_key,
    index_name,
    index_prefix,
    key_suffix,
    prefix_range,
    primary_key,
    primary_prefix,
)
from academy.academy_db.storage.base import generate_id


class TestKeyShapes:
    """Tests for key construction."""

    def test_primary_key(self):
        assert primary_key("program", "p1") == "program:p1"
        assert primary_prefix("program") == "program:"

    def test_index_key(self):
        """Index keys are {entity}_by_{dims}:{values}:{id}."""
        index = index_name("assessment", "program_player")
        assert index == "assessment_by_program_player"
        assert index_key(index, ["a1", "p1", "u1"], "s1") == "assessment_by_program_player:a1:p1:u1:s1"

    def test_coarser_prefix_contains_finer(self):
        """Fewer values give a prefix of the full key."""
        index = index_name("assessment", "program_player")
        key = index_key(index, ["a1", "p1", "u1"], "s1")
        assert key.startswith(index_prefix(index, ["a1", "p1"]))
        assert key.startswith(index_prefix(index, ["a1", "p1", "u1"]))
        assert not key.startswith(index_prefix(index, ["a1", "p2"]))

    def test_separator_in_value_rejected(self):
        """Values containing ':' would corrupt prefix scans."""
        with pytest.raises(ValueError):
            index_key("user_by_email", ["a:b"], "1")

    def test_composite_key_and_suffix(self):
        key = composite_key("program_attendance", "a1", "p1", "2024-05-01", "u1")
        assert key == "program_attendance:a1:p1:2024-05-01:u1"
        prefix = composite_key("program_attendance", "a1", "p1") + ":"
        assert key_suffix(key, prefix) == ["2024-05-01", "u1"]

    def test_prefix_range(self):
        start, end = prefix_range("program:")
        assert start == "program:"
        assert start < "program:zzzz" < end


class TestIds:
    """Tests for id generation."""

    def test_ids_are_unique(self):
        ids = {generate_id() for _ in range(200)}
        assert len(ids) == 200

    def test_ids_start_with_timestamp(self):
        timestamp, _, suffix = generate_id().partition("-")
        assert timestamp.isdigit()
        assert len(suffix) == 9
        assert ":" not in suffix
