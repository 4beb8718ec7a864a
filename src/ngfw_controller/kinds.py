"""Per-kind definitions driving the generic reconciler.

Every object kind is reconciled by the same engine. What differs is
captured here: how the composite id is shaped, how declared fields map to
the remote record, and which remote calls an update is split into.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from .client import Identity
from .delta import diff_by_key
from .mappers import (
    load_certificate,
    load_custom_url_category,
    load_firewall,
    load_prefix_list,
    load_rulestack,
    load_subnet_mappings,
    save_certificate,
    save_custom_url_category,
    save_firewall,
    save_prefix_list,
    save_rulestack,
)
from .phase import ConfigPhase, resolve_phase
from .records import FirewallInfo
from .state import DeclaredState

logger = logging.getLogger(__name__)

# Kind names
CERTIFICATE = "certificate"
CUSTOM_URL_CATEGORY = "custom_url_category"
PREFIX_LIST = "prefix_list"
RULESTACK = "rulestack"
FIREWALL = "firewall"

REGION_FIELD = "region"


@dataclass(frozen=True)
class UpdateGroup:
    """One independently updatable group of fields and the call that applies it.

    Attributes:
        name: Group name used in logs and partial update errors.
        method: Client coroutine method issued for the group.
        fields: Declared fields that trigger the call when changed. An empty
            tuple means the call is issued on every update.
        guard: Extra condition on the declared state for issuing the call.
        prepare: Builds the payload for the call from the full record. May
            return None when there is nothing to send.
    """

    name: str
    method: str
    fields: tuple[str, ...] = ()
    guard: Callable[[DeclaredState], bool] | None = None
    prepare: Callable[[Any, DeclaredState], Any | None] | None = None

    def applies(self, state: DeclaredState) -> bool:
        """Whether this group needs a remote call for ``state``."""
        if self.fields and not any(state.has_change(f) for f in self.fields):
            return False
        return self.guard is None or self.guard(state)

    def payload(self, record: Any, state: DeclaredState) -> Any | None:
        if self.prepare is None:
            return record
        return self.prepare(record, state)


@dataclass(frozen=True)
class ResourceKind:
    """Everything the reconciler needs to know about one object kind."""

    name: str
    id_fields: tuple[str, ...]
    key_fields: tuple[str, ...]
    load: Callable[[DeclaredState], Any]
    save: Callable[[DeclaredState, Identity, Any, Any], None]
    update_groups: tuple[UpdateGroup, ...]
    # Kinds without a candidate/running split expose the payload directly
    payload_of: Callable[[Any], Any] | None = None
    computed_fields: tuple[str, ...] = ("update_token",)
    write_only_fields: tuple[str, ...] = ()
    # Collections updated by add/remove deltas compare by natural key only
    drift_keys: Mapping[str, Callable[[Any], Any]] = field(default_factory=dict)

    @property
    def arity(self) -> int:
        """Number of components in this kind's composite id."""
        return len(self.id_fields)

    @property
    def phased(self) -> bool:
        return self.payload_of is None

    @property
    def label(self) -> str:
        return self.name.replace("_", " ")

    def identity_of(self, record: Any, region: str) -> dict[str, str]:
        """Identity fields of a record returned by the server."""
        return {
            f: region if f == REGION_FIELD else (getattr(record, f, "") or "")
            for f in self.id_fields
        }

    def project(self, response: Any, phase: ConfigPhase) -> Any | None:
        """Select the payload to save from a read response."""
        if self.payload_of is not None:
            return self.payload_of(response)
        return resolve_phase(response, phase)

    def drift_fields(self, declared: Mapping[str, Any]) -> list[str]:
        """Declared fields compared against the remote when planning updates."""
        ignored = set(self.computed_fields) | set(self.write_only_fields)
        return sorted(k for k in declared if k not in ignored)

    def drift_value(self, field_name: str, value: Any) -> Any:
        """Comparable form of a field value when planning updates."""
        normalize = self.drift_keys.get(field_name)
        return value if normalize is None else normalize(value)


def subnet_ids(mappings: Any) -> list[str]:
    """Sorted subnet ids of a subnet mapping collection."""
    return sorted({str(m.get("subnet_id") or "") for m in mappings or []})


# Kinds whose API replaces the whole record on every update
WHOLE_RECORD_UPDATE: tuple[UpdateGroup, ...] = (UpdateGroup(name="entry", method="update"),)


def subnet_mapping_delta(record: FirewallInfo, state: DeclaredState) -> FirewallInfo | None:
    """Attach associate/disassociate lists for the subnet mapping change.

    Mappings are compared by subnet id only. Returns None when the change
    does not add or remove any subnet.
    """
    old, new = state.get_change("subnet_mapping")
    to_add, to_remove = diff_by_key(old, new, key=lambda m: m.get("subnet_id"))

    if not to_add and not to_remove:
        logger.debug(
            "Subnet mapping change does not add or remove subnets",
            extra={"object_name": record.name},
        )
        return None

    logger.info(
        "Subnet mapping delta",
        extra={
            "object_name": record.name,
            "associate": [m.get("subnet_id") for m in to_add],
            "disassociate": [m.get("subnet_id") for m in to_remove],
        },
    )
    return record.model_copy(
        update={
            "associate_subnet_mappings": load_subnet_mappings(to_add),
            "disassociate_subnet_mappings": load_subnet_mappings(to_remove),
        }
    )


FIREWALL_UPDATE_GROUPS: tuple[UpdateGroup, ...] = (
    UpdateGroup(name="description", method="update_description", fields=("description",)),
    UpdateGroup(
        name="content_version",
        method="update_content_version",
        fields=("app_id_version",),
        guard=lambda state: bool(state.get("app_id_version")),
    ),
    UpdateGroup(
        name="subnet_mappings",
        method="update_subnet_mappings",
        fields=("subnet_mapping",),
        prepare=subnet_mapping_delta,
    ),
)


KINDS: dict[str, ResourceKind] = {
    CERTIFICATE: ResourceKind(
        name=CERTIFICATE,
        id_fields=("rulestack", "name"),
        key_fields=("rulestack", "name"),
        load=load_certificate,
        save=save_certificate,
        update_groups=WHOLE_RECORD_UPDATE,
        write_only_fields=("audit_comment",),
    ),
    CUSTOM_URL_CATEGORY: ResourceKind(
        name=CUSTOM_URL_CATEGORY,
        id_fields=("rulestack", "name"),
        key_fields=("rulestack", "name"),
        load=load_custom_url_category,
        save=save_custom_url_category,
        update_groups=WHOLE_RECORD_UPDATE,
        write_only_fields=("audit_comment",),
    ),
    PREFIX_LIST: ResourceKind(
        name=PREFIX_LIST,
        id_fields=("rulestack", "name"),
        key_fields=("rulestack", "name"),
        load=load_prefix_list,
        save=save_prefix_list,
        update_groups=WHOLE_RECORD_UPDATE,
        write_only_fields=("audit_comment",),
    ),
    RULESTACK: ResourceKind(
        name=RULESTACK,
        id_fields=("name",),
        key_fields=("name",),
        load=load_rulestack,
        save=save_rulestack,
        update_groups=WHOLE_RECORD_UPDATE,
        computed_fields=("update_token", "state"),
    ),
    FIREWALL: ResourceKind(
        name=FIREWALL,
        id_fields=("account_id", REGION_FIELD, "name"),
        key_fields=("account_id", "name"),
        load=load_firewall,
        save=save_firewall,
        update_groups=FIREWALL_UPDATE_GROUPS,
        payload_of=lambda response: response.firewall,
        computed_fields=("update_token", "status", "endpoint_service_name"),
        drift_keys={"subnet_mapping": subnet_ids},
    ),
}


def get_kind(name: str) -> ResourceKind:
    """Look up a kind by name.

    Raises:
        ValueError: If the kind is not known.
    """
    kind = KINDS.get(name)
    if kind is None:
        raise ValueError(f"Unknown kind '{name}'. Valid kinds: {sorted(KINDS)}")
    return kind
