"""
Key-space convention shared by every repository.

Key shapes:
    primary:          {entity}:{id}
    secondary index:  {entity}_by_{dims}:{dim values joined by ':'}:{id}  ->  id

Listing "all records for dimension X" is a half-open prefix scan over
[prefix, prefix + '\\xff'); each index value is a pointer that is resolved by
fetching the primary record.

Invariants:
    - Index keys are derived only from fields stored on the primary record,
      so a delete can rebuild every key it must remove without a lookup
    - Index values hold the referenced id only, never a copy of the record
    - The store guarantees lexicographic key order only; callers sort

How to change safely:
    - Never change an existing key shape without a migration of stored keys
    - Id and dimension values must not contain ':'
"""

from __future__ import annotations

from collections.abc import Sequence

SEPARATOR = ":"
RANGE_END = "\xff"


def primary_prefix(entity: str) -> str:
    return f"{entity}{SEPARATOR}"


def primary_key(entity: str, record_id: str) -> str:
    """Key of a primary record."""
    return f"{entity}{SEPARATOR}{record_id}"


def index_name(entity: str, by: str) -> str:
    """Name of a secondary index, e.g. index_name("assessment", "program_player")."""
    return f"{entity}_by_{by}"


def index_prefix(index: str, values: Sequence[str]) -> str:
    """Scan prefix for the given leading dimension values.

    Pass fewer values than the index has dimensions to scan a coarser slice.
    """
    parts = [index, *values]
    return SEPARATOR.join(parts) + SEPARATOR


def index_key(index: str, values: Sequence[str], record_id: str) -> str:
    """Full key of one secondary index entry."""
    if any(SEPARATOR in v for v in (*values, record_id)):
        raise ValueError(f"Index values must not contain {SEPARATOR!r}")
    return index_prefix(index, values) + record_id


def composite_key(prefix: str, *parts: str) -> str:
    """Key for records whose identity is a tuple, e.g. program_enrollment:{a}:{p}:{u}."""
    return SEPARATOR.join([prefix, *parts])


def prefix_range(prefix: str) -> tuple[str, str]:
    """Half-open range covering every key that starts with prefix."""
    return prefix, prefix + RANGE_END


def key_suffix(key: str, prefix: str) -> list[str]:
    """Split the part of key after prefix into its components."""
    return key[len(prefix):].split(SEPARATOR)
