"""Generic reconciliation engine for Cloud NGFW objects.

One ``Reconciler`` drives one object kind through its lifecycle:

    Absent --create--> Present --update--> Present --delete--> Absent

Each operation is a single sequence of awaited client calls:
1. Decode the composite id into identity fields (encode it on create)
2. Call the remote API, always against the candidate config for resources
3. Map the read response back into declared state

ERROR HANDLING:
- NotFoundError is recovered here: the id is cleared and the operation
  succeeds, which tells the caller the object no longer exists.
- IdentifierFormatError and every other client error propagate unchanged.
- Updates split into several calls raise PartialUpdateError when a later
  call fails after an earlier one was applied. Nothing is rolled back; the
  next read picks up whatever was applied and the next update computes a
  fresh delta from there.

No retries, backoff or timeouts are applied; those belong to the client.
Cancelling the surrounding task cancels the in-flight client call.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from .client import FirewallClient, NotFoundError, ObjectClient
from .identifiers import config_type_id, decode_id, encode_id
from .kinds import REGION_FIELD, ResourceKind
from .mappers import CONFIG_TYPE_FIELD
from .phase import ConfigPhase, effective_phase
from .state import DeclaredState

logger = logging.getLogger(__name__)


class PartialUpdateError(Exception):
    """An update call failed after earlier calls of the same pass succeeded.

    Attributes:
        kind: Object kind name.
        object_id: Composite id of the object.
        applied: Update groups already applied remotely.
        failed: Update group whose call failed.
    """

    def __init__(self, kind: str, object_id: str, applied: list[str], failed: str) -> None:
        self.kind = kind
        self.object_id = object_id
        self.applied = list(applied)
        self.failed = failed
        super().__init__(
            f"Update of {kind} {object_id!r} failed at '{failed}' after applying {self.applied}"
        )


def _log_extra(kind: ResourceKind, identity: Mapping[str, str]) -> dict[str, Any]:
    # "name" is reserved on LogRecord
    extra: dict[str, Any] = {"kind": kind.name}
    for key, value in identity.items():
        extra["object_name" if key == "name" else key] = value
    return extra


class Reconciler:
    """Lifecycle operations for one object kind.

    The reconciler holds no per-object state; every method works on the
    ``DeclaredState`` it is given, so one instance may serve many objects.
    """

    def __init__(
        self, kind: ResourceKind, client: ObjectClient | FirewallClient, *, region: str = ""
    ) -> None:
        """Initialize reconciler.

        Args:
            kind: Definition of the object kind.
            client: Management API client for the kind.
            region: Region the client is bound to; part of firewall ids.
        """
        self._kind = kind
        self._client = client
        self._region = region

    @property
    def kind(self) -> ResourceKind:
        return self._kind

    async def create(self, state: DeclaredState) -> None:
        """Create the object and refresh state from the server.

        The id is encoded from the identity the server returns, so values
        resolved remotely (such as a firewall's account id) are captured.
        If the create call fails the id stays unset.
        """
        record = self._kind.load(state)
        logger.info(
            f"create {self._kind.label}",
            extra=_log_extra(self._kind, self._kind.identity_of(record, self._region)),
        )

        created = await self._client.create(record)

        identity = self._kind.identity_of(created if created is not None else record, self._region)
        state.id = encode_id(*(identity[f] for f in self._kind.id_fields))

        await self.read(state)

    async def read(self, state: DeclaredState) -> None:
        """Refresh declared state from the candidate config.

        Clears the id when the object, or its candidate copy, is gone.

        Raises:
            IdentifierFormatError: If the stored id is malformed.
        """
        identity = self._identity_from_id(state)
        logger.info(f"read {self._kind.label}", extra=_log_extra(self._kind, identity))

        response = await self._read_remote(identity, ConfigPhase.CANDIDATE)
        if response is None:
            state.id = ""
            return

        payload = self._kind.project(response, ConfigPhase.CANDIDATE)
        if payload is None:
            logger.info(
                "Object has no candidate config, treating as absent",
                extra=_log_extra(self._kind, identity),
            )
            state.id = ""
            return

        self._kind.save(state, identity, payload, response)

    async def read_data_source(self, state: DeclaredState, phase: ConfigPhase) -> None:
        """Look up an object by its declared identity fields.

        Unlike resource reads, the phase is chosen by the caller. The id
        written back is qualified with the phase for rulestack-scoped kinds.
        """
        identity = {
            f: self._region if f == REGION_FIELD else (state.get(f) or "")
            for f in self._kind.id_fields
        }
        if self._kind.phased:
            state.set(CONFIG_TYPE_FIELD, phase.value)

        extra = _log_extra(self._kind, identity)
        extra.update({"ds": True, "config_type": phase.value})
        logger.info(f"read {self._kind.label}", extra=extra)

        response = await self._read_remote(identity, effective_phase(phase))
        if response is None:
            state.id = ""
            return

        payload = self._kind.project(response, phase)
        if payload is None:
            logger.info(
                "Object has no config in requested phase, treating as absent", extra=extra
            )
            state.id = ""
            return

        if self._kind.phased:
            state.id = config_type_id(phase, encode_id(*identity.values()))
        else:
            # The server resolves the owning account when none was declared
            identity = self._kind.identity_of(payload, self._region)
            state.id = encode_id(*identity.values())

        self._kind.save(state, identity, payload, response)

    async def update(self, state: DeclaredState) -> None:
        """Push changed fields to the server and refresh state.

        Each update group whose fields changed gets its own remote call, in
        declaration order. The first failure stops the sequence.

        Raises:
            PartialUpdateError: If a call fails after another one succeeded.
        """
        identity = self._identity_from_id(state)
        record = self._kind.load(state)
        extra = _log_extra(self._kind, identity)
        logger.info(f"update {self._kind.label}", extra=extra)

        applied: list[str] = []
        for group in self._kind.update_groups:
            if not group.applies(state):
                continue

            payload = group.payload(record, state)
            if payload is None:
                continue

            logger.debug("Applying update group", extra={**extra, "group": group.name})
            try:
                await getattr(self._client, group.method)(payload)
            except NotFoundError:
                logger.warning(
                    "Object disappeared during update, treating as absent",
                    extra={**extra, "group": group.name, "applied": applied},
                )
                state.id = ""
                return
            except Exception as e:
                if not applied:
                    raise
                logger.error(
                    "Update partially applied",
                    extra={**extra, "applied": applied, "failed": group.name, "error": str(e)},
                )
                raise PartialUpdateError(self._kind.name, state.id, applied, group.name) from e
            applied.append(group.name)

        await self.read(state)

    async def delete(self, state: DeclaredState) -> None:
        """Delete the object; an already missing object counts as deleted."""
        identity = self._identity_from_id(state)
        logger.info(f"delete {self._kind.label}", extra=_log_extra(self._kind, identity))

        try:
            await self._client.delete(identity)
        except NotFoundError:
            logger.info("Object already absent", extra=_log_extra(self._kind, identity))

        state.id = ""

    async def import_state(self, state: DeclaredState, object_id: str) -> None:
        """Adopt an existing object by id and read it into state.

        Raises:
            IdentifierFormatError: If ``object_id`` is malformed.
            NotFoundError: If no such object exists.
        """
        decode_id(object_id, self._kind.arity)
        state.id = object_id
        await self.read(state)
        if not state.id:
            raise NotFoundError(f"Cannot import non-existent {self._kind.label} {object_id!r}")

    def _identity_from_id(self, state: DeclaredState) -> dict[str, str]:
        parts = decode_id(state.id, self._kind.arity)
        identity = dict(zip(self._kind.id_fields, parts, strict=True))

        # Empty components are allowed; fall back to what is known locally
        for f, value in identity.items():
            if not value:
                identity[f] = self._region if f == REGION_FIELD else (state.get(f) or "")
        return identity

    async def _read_remote(self, identity: Mapping[str, str], phase: ConfigPhase) -> Any | None:
        try:
            return await self._client.read(identity, phase)
        except NotFoundError:
            logger.info("Object not found", extra=_log_extra(self._kind, identity))
            return None
