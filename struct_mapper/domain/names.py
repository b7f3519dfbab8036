"""
Field name canonicalisation. Pure functions, ZERO I/O.

Every name comparison the resolver makes (destination names, source names,
both sides of rename entries, ignored-field membership) goes through
normalize_name() with the same two flags.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

TAG_SEPARATOR = ","


def normalize_name(name: str, *, fuzzy_match: bool, ignore_case: bool) -> str:
    """
    Canonical matching key for a field name.

    fuzzy_match wins over ignore_case: it lowercases AND deletes underscores,
    so ``created_at``, ``CreatedAt`` and ``CREATED_AT`` all become ``createdat``.
    """
    if fuzzy_match:
        return name.replace("_", "").lower()
    if ignore_case:
        return name.lower()
    return name


def tag_name(metadata: Mapping[str, Any], tag_key: str | None) -> str | None:
    """
    Alternate field name carried in field metadata under ``tag_key``.

    Only the part before the first separator counts
    (``{"json": "user_id,omitempty"}`` -> ``"user_id"``). Returns None when no
    key is configured, the field has no such tag, or the name part is empty.
    """
    if not tag_key:
        return None
    raw = metadata.get(tag_key)
    if raw is None:
        return None
    name = str(raw).split(TAG_SEPARATOR, 1)[0].strip()
    return name or None


def contains_name(
    names: Iterable[str],
    name: str,
    *,
    fuzzy_match: bool,
    ignore_case: bool,
) -> bool:
    """Membership test with both sides normalized."""
    target = normalize_name(name, fuzzy_match=fuzzy_match, ignore_case=ignore_case)
    return any(
        normalize_name(n, fuzzy_match=fuzzy_match, ignore_case=ignore_case) == target
        for n in names
    )
