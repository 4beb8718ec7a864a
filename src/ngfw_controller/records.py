"""Typed records exchanged with the management API client.

Records are rebuilt from every remote read and never cached between
passes. Field names follow the declared-state vocabulary; translating to
the API's wire format is the client's job.
"""

from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel, Field

# =============================================================================
# Shared
# =============================================================================


class TagDetails(BaseModel):
    """One key/value tag as the API lists it."""

    model_config = {"extra": "ignore"}

    key: str
    value: str = ""


InfoT = TypeVar("InfoT", bound=BaseModel)


class ReadResponse(BaseModel, Generic[InfoT]):
    """Read response for rulestack-scoped objects.

    Either copy may be missing: an object created but never committed has
    no running copy.
    """

    model_config = {"extra": "ignore"}

    candidate: InfoT | None = None
    running: InfoT | None = None


# =============================================================================
# Rulestack-scoped objects
# =============================================================================


class CertificateInfo(BaseModel):
    """Certificate object inside a rulestack."""

    model_config = {"extra": "ignore"}

    rulestack: str
    name: str
    description: str = ""
    signer_arn: str = ""
    self_signed: bool = False
    audit_comment: str = ""
    update_token: str = ""


class CustomUrlCategoryInfo(BaseModel):
    """Custom URL category inside a rulestack."""

    model_config = {"extra": "ignore"}

    rulestack: str
    name: str
    description: str = ""
    url_list: list[str] = Field(default_factory=list)
    action: str = "none"
    audit_comment: str = ""
    update_token: str = ""


class PrefixListInfo(BaseModel):
    """Prefix list inside a rulestack."""

    model_config = {"extra": "ignore"}

    rulestack: str
    name: str
    description: str = ""
    prefix_list: list[str] = Field(default_factory=list)
    audit_comment: str = ""
    update_token: str = ""


# =============================================================================
# Rulestack
# =============================================================================


class ProfileConfig(BaseModel):
    """Security profile settings of a rulestack."""

    model_config = {"extra": "ignore"}

    anti_spyware: str = "BestPractice"
    anti_virus: str = "BestPractice"
    vulnerability: str = "BestPractice"
    url_filtering: str = "None"
    file_blocking: str = "BestPractice"
    outbound_trust_certificate: str = ""
    outbound_untrust_certificate: str = ""


class RulestackDetails(BaseModel):
    """Per-phase body of a rulestack."""

    model_config = {"extra": "ignore"}

    description: str = ""
    scope: str = ""
    account_id: str = ""
    account_group: str = ""
    minimum_app_id_version: str = ""
    profile: ProfileConfig = Field(default_factory=ProfileConfig)
    tags: list[TagDetails] | None = None
    update_token: str = ""


class RulestackInfo(BaseModel):
    """Rulestack as sent on create and update."""

    model_config = {"extra": "ignore"}

    name: str
    entry: RulestackDetails = Field(default_factory=RulestackDetails)


class RulestackReadResponse(ReadResponse[RulestackDetails]):
    """Rulestack read response; ``state`` is the commit state of the stack."""

    name: str
    state: str = ""


# =============================================================================
# Firewall
# =============================================================================


class SubnetMapping(BaseModel):
    """Attachment of a firewall endpoint to one VPC subnet."""

    model_config = {"extra": "ignore"}

    subnet_id: str
    availability_zone: str = ""


class FirewallInfo(BaseModel):
    """Firewall as sent on create and the update sub-calls."""

    model_config = {"extra": "ignore"}

    name: str
    vpc_id: str = ""
    account_id: str = ""
    description: str = ""
    endpoint_mode: str = "ServiceManaged"
    endpoint_service_name: str = ""
    subnet_mappings: list[SubnetMapping] | None = None
    app_id_version: str = ""
    automatic_upgrade_app_id_version: bool = True
    rulestack: str = ""
    global_rulestack: str = ""
    tags: list[TagDetails] | None = None
    update_token: str = ""

    # Only populated for the subnet mapping update call
    associate_subnet_mappings: list[SubnetMapping] = Field(default_factory=list)
    disassociate_subnet_mappings: list[SubnetMapping] = Field(default_factory=list)


class Attachment(BaseModel):
    """Endpoint attachment reported in firewall status."""

    model_config = {"extra": "ignore"}

    endpoint_id: str = ""
    status: str = ""
    rejected_reason: str = ""
    subnet_id: str = ""


class FirewallStatus(BaseModel):
    """Provisioning status of a firewall."""

    model_config = {"extra": "ignore"}

    firewall_status: str = ""
    failure_reason: str = ""
    rulestack_status: str = ""
    attachments: list[Attachment] | None = None


class FirewallReadResponse(BaseModel):
    """Firewall read response; firewalls have no candidate/running split."""

    model_config = {"extra": "ignore"}

    firewall: FirewallInfo
    status: FirewallStatus | None = None
