"""Key/value view of one declared object.

The reconciler reads and writes individual fields through this view and
never owns the whole structure. Writes are visible to the next read
immediately. ``prior`` holds the last known values so update passes can ask
which fields changed.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any


class DeclaredState:
    """Declared fields of one object plus its composite id."""

    def __init__(
        self,
        fields: Mapping[str, Any] | None = None,
        *,
        prior: Mapping[str, Any] | None = None,
        id: str = "",  # noqa: A002 - mirrors the persisted attribute name
    ) -> None:
        self._fields: dict[str, Any] = copy.deepcopy(dict(fields or {}))
        # Without a prior snapshot every field counts as unchanged
        self._prior: dict[str, Any] = copy.deepcopy(
            dict(prior) if prior is not None else self._fields
        )
        self.id = id

    def get(self, key: str, default: Any = None) -> Any:
        """Return the current value of ``key`` (a copy for containers)."""
        value = self._fields.get(key, default)
        return copy.deepcopy(value)

    def set(self, key: str, value: Any) -> None:
        """Write ``key``; the value is readable again right away."""
        self._fields[key] = copy.deepcopy(value)

    def has_change(self, key: str) -> bool:
        """Whether ``key`` differs from its prior value."""
        return self._prior.get(key) != self._fields.get(key)

    def get_change(self, key: str) -> tuple[Any, Any]:
        """Return ``(old, new)`` for ``key``."""
        return copy.deepcopy(self._prior.get(key)), self.get(key)

    def changed_fields(self) -> list[str]:
        """Names of all fields that differ from their prior values."""
        keys = set(self._fields) | set(self._prior)
        return sorted(k for k in keys if self.has_change(k))

    @property
    def fields(self) -> dict[str, Any]:
        """Snapshot of the current fields."""
        return copy.deepcopy(self._fields)

    def __repr__(self) -> str:
        return f"DeclaredState(id={self.id!r}, fields={sorted(self._fields)})"
