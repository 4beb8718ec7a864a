"""Add/remove deltas for collection fields keyed by a natural id.

Some collections (firewall subnet mappings) can only be changed through
associate/disassociate calls, never updated in place. Members whose key is
present on both sides are therefore left alone, even when a non-key
attribute such as the availability zone label differs.
"""

from __future__ import annotations

from collections.abc import Callable, Hashable, Iterable
from typing import TypeVar

T = TypeVar("T")
K = TypeVar("K", bound=Hashable)


def diff_by_key(
    old: Iterable[T] | None,
    new: Iterable[T] | None,
    key: Callable[[T], K],
) -> tuple[list[T], list[T]]:
    """Compute ``(to_add, to_remove)`` between two collections.

    Args:
        old: Previously known members.
        new: Desired members.
        key: Extracts the natural id of a member.

    Returns:
        Members of ``new`` whose key is missing from ``old`` and members of
        ``old`` whose key is missing from ``new``. Each key appears at most
        once per list, in input order.
    """
    old_items = list(old or [])
    new_items = list(new or [])
    old_by_key = _first_by_key(old_items, key)
    new_by_key = _first_by_key(new_items, key)

    to_add = [item for k, item in new_by_key.items() if k not in old_by_key]
    to_remove = [item for k, item in old_by_key.items() if k not in new_by_key]
    return to_add, to_remove


def _first_by_key(items: list[T], key: Callable[[T], K]) -> dict[K, T]:
    by_key: dict[K, T] = {}
    for item in items:
        by_key.setdefault(key(item), item)
    return by_key
