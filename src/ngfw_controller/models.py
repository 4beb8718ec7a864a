"""Pydantic models for declared object specifications.

These models provide:
1. Type-safe YAML parsing
2. Validation at the boundary (fail fast, fail loudly)
3. Clean transformation to the flat declared fields the reconciler reads

Fields left out of a spec are not managed: they are dropped from the
declared fields so drift planning never compares them.
"""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import BaseModel, Field, field_validator, model_validator

from .config import ID_SEPARATOR, MAX_OBJECT_NAME_LENGTH
from .kinds import CERTIFICATE, CUSTOM_URL_CATEGORY, FIREWALL, PREFIX_LIST, RULESTACK
from .mappers import string_set

URL_CATEGORY_ACTIONS = frozenset({"none", "alert", "allow", "block", "continue", "override"})
ENDPOINT_MODES = frozenset({"ServiceManaged", "CustomerManaged"})
PROFILE_DEFAULT = "BestPractice"

ObjectName = Annotated[str, Field(min_length=1, max_length=MAX_OBJECT_NAME_LENGTH)]


def _check_separator(v: str) -> str:
    if ID_SEPARATOR in v:
        raise ValueError(f"must not contain {ID_SEPARATOR!r}")
    return v


# =============================================================================
# Base Models
# =============================================================================


class BaseSpec(BaseModel):
    """Base specification with common fields."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    name: ObjectName
    description: str | None = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _check_separator(v)

    def to_declared_fields(self) -> dict[str, Any]:
        """Convert spec to the flat declared-state fields."""
        return self.model_dump(exclude_none=True)


class RulestackObjectSpec(BaseSpec):
    """Object living inside a rulestack."""

    rulestack: ObjectName
    audit_comment: str | None = Field(None, alias="auditComment")

    @field_validator("rulestack")
    @classmethod
    def validate_rulestack(cls, v: str) -> str:
        return _check_separator(v)


# =============================================================================
# Rulestack-scoped objects
# =============================================================================


class CertificateSpec(RulestackObjectSpec):
    """Certificate object specification."""

    signer_arn: str | None = Field(None, alias="signerArn")
    self_signed: bool | None = Field(None, alias="selfSigned")

    @model_validator(mode="after")
    def validate_signer(self) -> CertificateSpec:
        if self.signer_arn and self.self_signed:
            raise ValueError("signer_arn conflicts with self_signed")
        return self


class CustomUrlCategorySpec(RulestackObjectSpec):
    """Custom URL category specification."""

    url_list: list[str] = Field(alias="urlList", min_length=1)
    action: str = "none"

    @field_validator("url_list")
    @classmethod
    def normalize_url_list(cls, v: list[str]) -> list[str]:
        return string_set(v)

    @field_validator("action")
    @classmethod
    def validate_action(cls, v: str) -> str:
        if v not in URL_CATEGORY_ACTIONS:
            raise ValueError(f"action must be one of {sorted(URL_CATEGORY_ACTIONS)}")
        return v


class PrefixListSpec(RulestackObjectSpec):
    """Prefix list specification."""

    prefix_list: list[str] = Field(alias="prefixList", min_length=1)

    @field_validator("prefix_list")
    @classmethod
    def validate_prefixes(cls, v: list[str]) -> list[str]:
        for prefix in v:
            # Basic CIDR validation
            if "/" not in prefix:
                raise ValueError(f"prefix must be in CIDR notation (e.g., 10.0.0.0/24): {prefix}")
        return string_set(v)


# =============================================================================
# Rulestack
# =============================================================================


class ProfileConfigSpec(BaseModel):
    """Rulestack security profile block."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    anti_spyware: str = Field(PROFILE_DEFAULT, alias="antiSpyware")
    anti_virus: str = Field(PROFILE_DEFAULT, alias="antiVirus")
    vulnerability: str = PROFILE_DEFAULT
    url_filtering: str = Field("None", alias="urlFiltering")
    file_blocking: str = Field(PROFILE_DEFAULT, alias="fileBlocking")
    outbound_trust_certificate: str = Field("", alias="outboundTrustCertificate")
    outbound_untrust_certificate: str = Field("", alias="outboundUntrustCertificate")


class RulestackSpec(BaseSpec):
    """Rulestack specification."""

    scope: str | None = None
    account_id: str | None = Field(None, alias="accountId")
    account_group: str | None = Field(None, alias="accountGroup")
    minimum_app_id_version: str | None = Field(None, alias="minimumAppIdVersion")
    tags: dict[str, str] | None = None
    profile_config: ProfileConfigSpec = Field(alias="profileConfig")

    @field_validator("profile_config", mode="before")
    @classmethod
    def unwrap_profile_config(cls, v: Any) -> Any:
        # Accept the list-of-one form used in declared state
        if isinstance(v, list):
            if len(v) != 1:
                raise ValueError("profile_config must contain exactly one block")
            return v[0]
        return v

    def to_declared_fields(self) -> dict[str, Any]:
        fields = super().to_declared_fields()
        fields["profile_config"] = [self.profile_config.model_dump()]
        return fields


# =============================================================================
# Firewall
# =============================================================================


class SubnetMappingSpec(BaseModel):
    """One firewall subnet attachment."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    subnet_id: Annotated[str, Field(min_length=1, alias="subnetId")]
    az: str = ""


class FirewallSpec(BaseSpec):
    """Firewall specification."""

    vpc_id: Annotated[str, Field(min_length=1, alias="vpcId")]
    account_id: str | None = Field(None, alias="accountId")
    endpoint_mode: str = Field("ServiceManaged", alias="endpointMode")
    subnet_mapping: list[SubnetMappingSpec] = Field(alias="subnetMapping", min_length=1)
    app_id_version: str | None = Field(None, alias="appIdVersion")
    automatic_upgrade_app_id_version: bool = Field(True, alias="automaticUpgradeAppIdVersion")
    rulestack: str | None = None
    global_rulestack: str | None = Field(None, alias="globalRulestack")
    tags: dict[str, str] | None = None

    @field_validator("account_id")
    @classmethod
    def validate_account_id(cls, v: str | None) -> str | None:
        return v if v is None else _check_separator(v)

    @field_validator("endpoint_mode")
    @classmethod
    def validate_endpoint_mode(cls, v: str) -> str:
        if v not in ENDPOINT_MODES:
            raise ValueError(f"endpoint_mode must be one of {sorted(ENDPOINT_MODES)}")
        return v

    @field_validator("subnet_mapping")
    @classmethod
    def validate_unique_subnets(cls, v: list[SubnetMappingSpec]) -> list[SubnetMappingSpec]:
        seen: set[str] = set()
        for mapping in v:
            if mapping.subnet_id in seen:
                raise ValueError(f"duplicate subnet_id in subnet_mapping: {mapping.subnet_id}")
            seen.add(mapping.subnet_id)
        return v


# =============================================================================
# Spec Registry
# =============================================================================

SPEC_CLASSES: dict[str, type[BaseSpec]] = {
    CERTIFICATE: CertificateSpec,
    CUSTOM_URL_CATEGORY: CustomUrlCategorySpec,
    PREFIX_LIST: PrefixListSpec,
    RULESTACK: RulestackSpec,
    FIREWALL: FirewallSpec,
}

# Kubernetes-style kind names accepted in spec files
KIND_ALIASES: dict[str, str] = {
    "Certificate": CERTIFICATE,
    "CustomUrlCategory": CUSTOM_URL_CATEGORY,
    "PrefixList": PREFIX_LIST,
    "Rulestack": RULESTACK,
    "RuleStack": RULESTACK,
    "Firewall": FIREWALL,
}


def normalize_kind(kind: str) -> str:
    """Map a spec file ``kind`` to the internal kind name.

    Raises:
        ValueError: If the kind is not recognized.
    """
    normalized = KIND_ALIASES.get(kind, kind)
    if normalized not in SPEC_CLASSES:
        valid = sorted(set(KIND_ALIASES) | set(SPEC_CLASSES))
        raise ValueError(f"Unknown kind '{kind}'. Valid kinds: {valid}")
    return normalized


def get_spec_class(kind: str) -> type[BaseSpec]:
    """Get the spec class for a kind (internal or spec-file name)."""
    return SPEC_CLASSES[normalize_kind(kind)]
