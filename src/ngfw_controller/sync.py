"""One reconciliation pass over all declared objects.

For every declared object:
1. Tracked: read it to refresh the last known state. An entry tracked
   under another key (for example an imported firewall whose key carries
   the server-resolved account id) is matched by identity and rekeyed
2. Not tracked, or gone after the refresh: create it
3. Present but drifted from the declaration: update it, with the
   refreshed state as the prior snapshot so only changed fields are sent

With pruning enabled, tracked objects that are no longer declared are
deleted. The state store is written after every mutation so ids assigned
earlier in a pass survive a failure later on.

Objects are processed one at a time in declaration order (rulestacks are
expected before the objects living in them). A failing object is recorded
in the result and the pass continues with the next one.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from .client import ClientFactoryError
from .kinds import get_kind
from .reconciler import Reconciler
from .spec_loader import DeclaredObject
from .state import DeclaredState
from .state_store import StateStore

logger = logging.getLogger(__name__)


class SyncAction(str, Enum):
    """What a pass did (or would do, in dry run) to one object."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    NOOP = "noop"


@dataclass
class ObjectResult:
    """Outcome for one object."""

    key: str
    kind: str
    action: SyncAction = SyncAction.NOOP
    object_id: str = ""
    drift: list[str] = field(default_factory=list)
    error: Exception | None = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class SyncResult:
    """Result of a single sync pass."""

    dry_run: bool = False
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    objects: list[ObjectResult] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        """Calculate duration in seconds."""
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    @property
    def counts(self) -> dict[str, int]:
        """Number of objects per action, plus ``error``."""
        counts = {action.value: 0 for action in SyncAction}
        counts["error"] = 0
        for obj in self.objects:
            if obj.error is not None:
                counts["error"] += 1
            else:
                counts[obj.action.value] += 1
        return counts

    @property
    def errors(self) -> list[ObjectResult]:
        return [obj for obj in self.objects if obj.error is not None]

    @property
    def success(self) -> bool:
        """Check if every object succeeded."""
        return not self.errors


def compute_drift(
    kind_name: str, declared: Mapping[str, Any], refreshed: Mapping[str, Any]
) -> list[str]:
    """Declared fields whose value differs from the refreshed state.

    Only fields present in the declaration are compared, and computed or
    write-only fields never count as drift. Collections applied as deltas
    (firewall subnet mappings) are compared by natural key, ignoring order.
    """
    kind = get_kind(kind_name)
    return [
        f
        for f in kind.drift_fields(declared)
        if kind.drift_value(f, declared[f]) != kind.drift_value(f, refreshed.get(f))
    ]


class Syncer:
    """Runs sync passes against one set of clients and one state store."""

    def __init__(
        self,
        clients: Mapping[str, Any],
        store: StateStore,
        *,
        region: str,
        dry_run: bool = False,
        prune: bool = False,
    ) -> None:
        self._clients = clients
        self._store = store
        self._region = region
        self._dry_run = dry_run
        self._prune = prune

    def reconciler_for(self, kind_name: str) -> Reconciler:
        """Build the reconciler for a kind.

        Raises:
            ValueError: If the kind is unknown.
            ClientFactoryError: If no client was provided for the kind.
        """
        kind = get_kind(kind_name)
        client = self._clients.get(kind_name)
        if client is None:
            raise ClientFactoryError(f"No client configured for kind '{kind_name}'")
        return Reconciler(kind, client, region=self._region)

    async def sync(self, objects: Iterable[DeclaredObject]) -> SyncResult:
        """Run one pass over ``objects``."""
        result = SyncResult(dry_run=self._dry_run)
        declared = list(objects)
        declared_keys = {obj.key for obj in declared}
        claimed: set[str] = set()

        for obj in declared:
            result.objects.append(await self._sync_object(obj, declared_keys, claimed))

        if self._prune:
            for key in self._store.keys():
                if key not in declared_keys and key not in claimed:
                    result.objects.append(await self._prune_object(key))

        result.end_time = datetime.now(UTC)
        self._log_result(result)
        return result

    def find_tracked(
        self, obj: DeclaredObject, declared_keys: set[str], claimed: set[str]
    ) -> str | None:
        """Key of the tracked entry managing ``obj``, if any.

        Entries are matched on the exact declared key first. Otherwise an
        entry of the same kind that no other declaration owns matches when
        every key field the declaration sets equals the tracked value, so
        an account id left to the server still finds an imported firewall.
        The match must be unique.
        """
        if obj.key in self._store:
            return obj.key

        wanted = {
            f: obj.fields[f] for f in get_kind(obj.kind).key_fields if obj.fields.get(f)
        }
        matches = []
        for key in self._store.keys():
            if not key.startswith(f"{obj.kind}/") or key in declared_keys or key in claimed:
                continue
            tracked = self._store.get(key)
            if tracked is not None and all(
                tracked.fields.get(f) == value for f, value in wanted.items()
            ):
                matches.append(key)

        return matches[0] if len(matches) == 1 else None

    async def _sync_object(
        self, obj: DeclaredObject, declared_keys: set[str], claimed: set[str]
    ) -> ObjectResult:
        outcome = ObjectResult(key=obj.key, kind=obj.kind)
        extra: dict[str, Any] = {"key": obj.key, "kind": obj.kind, "dry_run": self._dry_run}

        try:
            reconciler = self.reconciler_for(obj.kind)
            tracked_key = self.find_tracked(obj, declared_keys, claimed)
            tracked = None
            if tracked_key is not None:
                claimed.add(tracked_key)
                tracked = self._store.get(tracked_key)
                if tracked is not None and tracked_key != obj.key:
                    logger.info(
                        "Tracked object matched by identity",
                        extra={**extra, "tracked_key": tracked_key},
                    )
                    if not self._dry_run:
                        self._store.remove(tracked_key)
                        self._store.put(obj.key, tracked.id, tracked.fields)
                        self._store.save()

            refreshed: DeclaredState | None = None
            if tracked is not None:
                refreshed = DeclaredState(tracked.fields, id=tracked.id)
                await reconciler.read(refreshed)
                if not refreshed.id:
                    logger.warning("Tracked object is gone, recreating", extra=extra)
                    refreshed = None
                    if not self._dry_run:
                        self._store.remove(obj.key)
                        self._store.save()

            if refreshed is None:
                outcome.action = SyncAction.CREATE
                if self._dry_run:
                    logger.info("Would create object", extra=extra)
                    return outcome
                state = DeclaredState(obj.fields)
                try:
                    await reconciler.create(state)
                finally:
                    # Keep the id even when the read after create fails
                    if state.id:
                        self._commit(obj.key, state)
                outcome.object_id = state.id
                return outcome

            outcome.object_id = refreshed.id
            current = refreshed.fields
            outcome.drift = compute_drift(obj.kind, obj.fields, current)

            if not outcome.drift:
                if not self._dry_run:
                    self._commit(obj.key, refreshed)
                return outcome

            outcome.action = SyncAction.UPDATE
            if self._dry_run:
                logger.info("Would update object", extra={**extra, "drift": outcome.drift})
                return outcome

            logger.info("Drift detected", extra={**extra, "drift": outcome.drift})
            state = DeclaredState({**current, **obj.fields}, prior=current, id=refreshed.id)
            await reconciler.update(state)
            self._commit(obj.key, state)
            outcome.object_id = state.id

        except Exception as e:
            # Recorded per object; the pass continues with the next one
            logger.error(
                "Object sync failed",
                extra={**extra, "error": str(e), "error_type": type(e).__name__},
            )
            outcome.error = e

        return outcome

    async def _prune_object(self, key: str) -> ObjectResult:
        kind_name = key.split("/", 1)[0]
        outcome = ObjectResult(key=key, kind=kind_name, action=SyncAction.DELETE)
        extra: dict[str, Any] = {"key": key, "kind": kind_name, "dry_run": self._dry_run}

        tracked = self._store.get(key)
        if tracked is None:
            return outcome
        outcome.object_id = tracked.id

        if self._dry_run:
            logger.info("Would delete object", extra=extra)
            return outcome

        try:
            reconciler = self.reconciler_for(kind_name)
            state = DeclaredState(tracked.fields, id=tracked.id)
            await reconciler.delete(state)
            self._store.remove(key)
            self._store.save()
        except Exception as e:
            logger.error(
                "Object delete failed",
                extra={**extra, "error": str(e), "error_type": type(e).__name__},
            )
            outcome.error = e

        return outcome

    def _commit(self, key: str, state: DeclaredState) -> None:
        self._store.put(key, state.id, state.fields)
        self._store.save()

    def _log_result(self, result: SyncResult) -> None:
        """Log sync result with structured data."""
        extra: dict[str, Any] = {
            "dry_run": result.dry_run,
            "duration_seconds": result.duration_seconds,
            **result.counts,
        }

        if result.errors:
            extra["failed"] = [obj.key for obj in result.errors]
            logger.error("Sync pass finished with errors", extra=extra)
        else:
            logger.info("Sync pass result", extra=extra)
