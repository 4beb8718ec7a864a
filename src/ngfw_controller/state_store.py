"""Persistent record of the objects the controller manages.

The store is a single YAML file::

    certificate/stack1:cert1:
      id: stack1:cert1
      fields: {rulestack: stack1, name: cert1, ...}

Keys are ``<kind>/<declared key>``. The whole file is rewritten on every
save through a temporary file and an atomic rename, so a crash mid-write
leaves the previous version in place.
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .config import MAX_STATE_FILE_SIZE_BYTES

logger = logging.getLogger(__name__)


class StateStoreError(Exception):
    """Raised when the state file cannot be read or written."""

    pass


@dataclass
class TrackedObject:
    """Last known id and fields of one managed object."""

    id: str
    fields: dict[str, Any] = field(default_factory=dict)


class StateStore:
    """YAML-file backed map of tracked objects."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._objects: dict[str, TrackedObject] = {}

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> None:
        """Read the state file; a missing file means nothing is tracked.

        Raises:
            StateStoreError: If the file is too large, unreadable or malformed.
        """
        if not self._path.exists():
            logger.info("No state file yet", extra={"state_file": str(self._path)})
            self._objects = {}
            return

        try:
            file_size = self._path.stat().st_size
        except OSError as e:
            raise StateStoreError(f"Failed to stat state file {self._path}: {e}") from e

        if file_size > MAX_STATE_FILE_SIZE_BYTES:
            raise StateStoreError(
                f"State file exceeds maximum size of {MAX_STATE_FILE_SIZE_BYTES} bytes: "
                f"{self._path}"
            )

        try:
            data = yaml.safe_load(self._path.read_text(encoding="utf-8")) or {}
        except OSError as e:
            raise StateStoreError(f"Failed to read state file {self._path}: {e}") from e
        except yaml.YAMLError as e:
            raise StateStoreError(f"Invalid YAML in state file {self._path}: {e}") from e

        if not isinstance(data, dict):
            raise StateStoreError(f"State file must contain a mapping: {self._path}")

        objects: dict[str, TrackedObject] = {}
        for key, entry in data.items():
            if not isinstance(entry, dict) or not entry.get("id"):
                raise StateStoreError(f"Malformed state entry {key!r} in {self._path}")
            objects[str(key)] = TrackedObject(id=entry["id"], fields=entry.get("fields") or {})

        self._objects = objects
        logger.info(
            "Loaded state",
            extra={"state_file": str(self._path), "object_count": len(objects)},
        )

    def save(self) -> None:
        """Write the state file atomically.

        Raises:
            StateStoreError: If the file cannot be written.
        """
        data = {
            key: {"id": obj.id, "fields": obj.fields}
            for key, obj in sorted(self._objects.items())
        }

        try:
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    yaml.safe_dump(data, f, sort_keys=True, default_flow_style=False)
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StateStoreError(f"Failed to write state file {self._path}: {e}") from e

        logger.debug(
            "Saved state",
            extra={"state_file": str(self._path), "object_count": len(data)},
        )

    def get(self, key: str) -> TrackedObject | None:
        return self._objects.get(key)

    def put(self, key: str, object_id: str, fields: dict[str, Any]) -> None:
        """Track ``key``; an empty id untracks it instead."""
        if not object_id:
            self.remove(key)
            return
        self._objects[key] = TrackedObject(id=object_id, fields=fields)

    def remove(self, key: str) -> None:
        self._objects.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._objects)

    def __contains__(self, key: object) -> bool:
        return key in self._objects

    def __len__(self) -> int:
        return len(self._objects)
