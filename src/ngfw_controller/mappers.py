"""Translation between declared fields and remote records.

Each kind has a ``load_*`` that builds the record sent to the API from
declared state, and a ``save_*`` that writes a read response back. The two
are inverses per field, with these conventions:

- tags are a key/value mapping in declared state and a list of
  ``TagDetails`` remotely;
- single settings blocks (rulestack profile, firewall status) are a list of
  exactly one mapping in declared state;
- string sets are stored as sorted lists of unique strings;
- empty or omitted remote collections are saved as empty collections, never
  left unset, so the declared shape is the same on every pass.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from .records import (
    CertificateInfo,
    CustomUrlCategoryInfo,
    FirewallInfo,
    FirewallReadResponse,
    FirewallStatus,
    PrefixListInfo,
    ProfileConfig,
    RulestackDetails,
    RulestackInfo,
    RulestackReadResponse,
    SubnetMapping,
    TagDetails,
)
from .state import DeclaredState

# Declared field names shared by several kinds
RULESTACK_FIELD = "rulestack"
GLOBAL_RULESTACK_FIELD = "global_rulestack"
TAGS_FIELD = "tags"
CONFIG_TYPE_FIELD = "config_type"

# =============================================================================
# Collection helpers
# =============================================================================


def string_set(values: Iterable[str] | None) -> list[str]:
    """Normalize a string collection to a sorted list without duplicates."""
    return sorted(set(values or []))


def load_tags(tags: Mapping[str, Any] | None) -> list[TagDetails]:
    """Convert a declared tag mapping to API rows; empty gives ``[]``."""
    return [TagDetails(key=k, value=str(v)) for k, v in sorted((tags or {}).items())]


def dump_tags(tags: Iterable[TagDetails] | None) -> dict[str, str]:
    """Convert API tag rows to a mapping; omitted gives ``{}``."""
    return {t.key: t.value for t in tags or []}


def unwrap_single(value: Any) -> dict[str, Any]:
    """Return the mapping inside a list-of-one block, or ``{}``."""
    if not value:
        return {}
    if isinstance(value, Mapping):
        return dict(value)
    first = value[0]
    return dict(first) if first else {}


def wrap_single(block: Mapping[str, Any]) -> list[dict[str, Any]]:
    """Wrap a settings mapping in the list-of-one declared encoding."""
    return [dict(block)]


def load_subnet_mappings(mappings: Iterable[Mapping[str, Any]] | None) -> list[SubnetMapping]:
    """Convert declared ``subnet_mapping`` rows to API records."""
    return [
        SubnetMapping(subnet_id=m.get("subnet_id") or "", availability_zone=m.get("az") or "")
        for m in mappings or []
    ]


def save_subnet_mappings(mappings: Iterable[SubnetMapping] | None) -> list[dict[str, str]]:
    """Convert API subnet mappings to declared rows; omitted gives ``[]``."""
    return [{"subnet_id": m.subnet_id, "az": m.availability_zone} for m in mappings or []]


def _str(state: DeclaredState, key: str) -> str:
    return state.get(key) or ""


# =============================================================================
# Certificate
# =============================================================================


def load_certificate(state: DeclaredState) -> CertificateInfo:
    return CertificateInfo(
        rulestack=_str(state, RULESTACK_FIELD),
        name=_str(state, "name"),
        description=_str(state, "description"),
        signer_arn=_str(state, "signer_arn"),
        self_signed=bool(state.get("self_signed")),
        audit_comment=_str(state, "audit_comment"),
    )


def save_certificate(
    state: DeclaredState, identity: Mapping[str, str], o: CertificateInfo, _response: Any
) -> None:
    state.set(RULESTACK_FIELD, identity["rulestack"])
    state.set("name", identity["name"])
    state.set("description", o.description)
    state.set("signer_arn", o.signer_arn)
    state.set("self_signed", o.self_signed)
    state.set("audit_comment", o.audit_comment)
    state.set("update_token", o.update_token)


# =============================================================================
# Custom URL category
# =============================================================================


def load_custom_url_category(state: DeclaredState) -> CustomUrlCategoryInfo:
    return CustomUrlCategoryInfo(
        rulestack=_str(state, RULESTACK_FIELD),
        name=_str(state, "name"),
        description=_str(state, "description"),
        url_list=string_set(state.get("url_list")),
        action=state.get("action") or "none",
        audit_comment=_str(state, "audit_comment"),
    )


def save_custom_url_category(
    state: DeclaredState, identity: Mapping[str, str], o: CustomUrlCategoryInfo, _response: Any
) -> None:
    state.set(RULESTACK_FIELD, identity["rulestack"])
    state.set("name", identity["name"])
    state.set("description", o.description)
    state.set("url_list", string_set(o.url_list))
    state.set("action", o.action)
    state.set("audit_comment", o.audit_comment)
    state.set("update_token", o.update_token)


# =============================================================================
# Prefix list
# =============================================================================


def load_prefix_list(state: DeclaredState) -> PrefixListInfo:
    return PrefixListInfo(
        rulestack=_str(state, RULESTACK_FIELD),
        name=_str(state, "name"),
        description=_str(state, "description"),
        prefix_list=string_set(state.get("prefix_list")),
        audit_comment=_str(state, "audit_comment"),
    )


def save_prefix_list(
    state: DeclaredState, identity: Mapping[str, str], o: PrefixListInfo, _response: Any
) -> None:
    state.set(RULESTACK_FIELD, identity["rulestack"])
    state.set("name", identity["name"])
    state.set("description", o.description)
    state.set("prefix_list", string_set(o.prefix_list))
    state.set("audit_comment", o.audit_comment)
    state.set("update_token", o.update_token)


# =============================================================================
# Rulestack
# =============================================================================


def load_rulestack(state: DeclaredState) -> RulestackInfo:
    """Build a rulestack record, unwrapping the single ``profile_config`` block."""
    profile = {k: v for k, v in unwrap_single(state.get("profile_config")).items() if v is not None}

    return RulestackInfo(
        name=_str(state, "name"),
        entry=RulestackDetails(
            description=_str(state, "description"),
            scope=_str(state, "scope"),
            account_id=_str(state, "account_id"),
            account_group=_str(state, "account_group"),
            minimum_app_id_version=_str(state, "minimum_app_id_version"),
            tags=load_tags(state.get(TAGS_FIELD)),
            profile=ProfileConfig.model_validate(profile),
        ),
    )


def save_rulestack(
    state: DeclaredState,
    identity: Mapping[str, str],
    o: RulestackDetails,
    response: RulestackReadResponse,
) -> None:
    """Write a rulestack read back, always as a list-of-one profile block."""
    state.set("name", response.name or identity["name"])
    state.set("description", o.description)
    state.set("scope", o.scope)
    state.set("account_id", o.account_id)
    state.set("account_group", o.account_group)
    state.set("minimum_app_id_version", o.minimum_app_id_version)
    state.set("profile_config", wrap_single(o.profile.model_dump()))
    state.set(TAGS_FIELD, dump_tags(o.tags))
    state.set("update_token", o.update_token)
    state.set("state", response.state)


# =============================================================================
# Firewall
# =============================================================================


def load_firewall(state: DeclaredState) -> FirewallInfo:
    automatic_upgrade = state.get("automatic_upgrade_app_id_version")

    return FirewallInfo(
        name=_str(state, "name"),
        vpc_id=_str(state, "vpc_id"),
        account_id=_str(state, "account_id"),
        description=_str(state, "description"),
        endpoint_mode=state.get("endpoint_mode") or "ServiceManaged",
        subnet_mappings=load_subnet_mappings(state.get("subnet_mapping")),
        app_id_version=_str(state, "app_id_version"),
        automatic_upgrade_app_id_version=True if automatic_upgrade is None else automatic_upgrade,
        rulestack=_str(state, RULESTACK_FIELD),
        global_rulestack=_str(state, GLOBAL_RULESTACK_FIELD),
        tags=load_tags(state.get(TAGS_FIELD)),
    )


def save_firewall(
    state: DeclaredState,
    identity: Mapping[str, str],
    o: FirewallInfo,
    response: FirewallReadResponse,
) -> None:
    state.set("name", identity["name"])
    state.set("vpc_id", o.vpc_id)
    state.set("account_id", o.account_id)
    state.set("description", o.description)
    state.set("endpoint_mode", o.endpoint_mode)
    state.set("endpoint_service_name", o.endpoint_service_name)
    state.set("subnet_mapping", save_subnet_mappings(o.subnet_mappings))
    state.set("app_id_version", o.app_id_version)
    state.set("automatic_upgrade_app_id_version", o.automatic_upgrade_app_id_version)
    state.set(RULESTACK_FIELD, o.rulestack)
    state.set(GLOBAL_RULESTACK_FIELD, o.global_rulestack)
    state.set(TAGS_FIELD, dump_tags(o.tags))
    state.set("update_token", o.update_token)
    state.set("status", save_status(response.status))


def save_status(status: FirewallStatus | None) -> list[dict[str, Any]]:
    """Render firewall status as a list-of-one block (``[]`` when unreported)."""
    if status is None:
        return []

    attachments = [
        {
            "endpoint_id": att.endpoint_id,
            "status": att.status,
            "rejected_reason": att.rejected_reason,
            "subnet_id": att.subnet_id,
        }
        for att in status.attachments or []
    ]

    return wrap_single(
        {
            "firewall_status": status.firewall_status,
            "failure_reason": status.failure_reason,
            "rulestack_status": status.rulestack_status,
            "attachments": attachments,
        }
    )
