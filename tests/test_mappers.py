"""Tests for declared-state and record mapping."""

from ngfw_controller.mappers import (
    dump_tags,
    load_certificate,
    load_custom_url_category,
    load_firewall,
    load_prefix_list,
    load_rulestack,
    load_tags,
    save_certificate,
    save_custom_url_category,
    save_firewall,
    save_rulestack,
    save_status,
    string_set,
    unwrap_single,
)
from ngfw_controller.records import (
    Attachment,
    CertificateInfo,
    CustomUrlCategoryInfo,
    FirewallInfo,
    FirewallReadResponse,
    FirewallStatus,
    ProfileConfig,
    RulestackDetails,
    RulestackReadResponse,
    SubnetMapping,
    TagDetails,
)
from ngfw_controller.state import DeclaredState


class TestCollectionHelpers:
    """Tests for tag, set and single-block helpers."""

    def test_string_set(self) -> None:
        """Test string sets are sorted and deduplicated."""
        assert string_set(["b.com", "a.com", "b.com"]) == ["a.com", "b.com"]
        assert string_set(None) == []

    def test_load_tags(self) -> None:
        """Test tag mappings become sorted API rows."""
        assert load_tags({"b": "2", "a": "1"}) == [
            TagDetails(key="a", value="1"),
            TagDetails(key="b", value="2"),
        ]

    def test_empty_tags(self) -> None:
        """Test empty and omitted tags map to empty collections both ways."""
        assert load_tags(None) == []
        assert load_tags({}) == []
        assert dump_tags(None) == {}
        assert dump_tags([]) == {}

    def test_unwrap_single(self) -> None:
        """Test list-of-one blocks unwrap to their mapping."""
        assert unwrap_single([{"a": 1}]) == {"a": 1}
        assert unwrap_single([]) == {}
        assert unwrap_single(None) == {}
        assert unwrap_single({"a": 1}) == {"a": 1}


class TestRulestackObjects:
    """Tests for certificate, URL category and prefix list mapping."""

    def test_certificate_round_trip(self) -> None:
        """Test saving a loaded certificate gives back the declared fields."""
        declared = {
            "rulestack": "stack1",
            "name": "cert1",
            "description": "d",
            "signer_arn": "",
            "self_signed": True,
            "audit_comment": "c",
            "update_token": "",
        }
        record = load_certificate(DeclaredState(declared))
        state = DeclaredState()

        save_certificate(state, {"rulestack": "stack1", "name": "cert1"}, record, None)

        assert state.fields == declared

    def test_save_uses_identity_for_names(self) -> None:
        """Test rulestack and name come from the identity, not the payload."""
        state = DeclaredState()
        payload = CertificateInfo(rulestack="", name="", update_token="tok")

        save_certificate(state, {"rulestack": "stack1", "name": "cert1"}, payload, None)

        assert state.get("rulestack") == "stack1"
        assert state.get("name") == "cert1"
        assert state.get("update_token") == "tok"

    def test_url_list_is_set(self) -> None:
        """Test URL lists are normalized on load and save."""
        record = load_custom_url_category(
            DeclaredState({"rulestack": "s", "name": "u", "url_list": ["b.com", "a.com", "a.com"]})
        )
        assert record.url_list == ["a.com", "b.com"]
        assert record.action == "none"

        state = DeclaredState()
        save_custom_url_category(
            state,
            {"rulestack": "s", "name": "u"},
            CustomUrlCategoryInfo(rulestack="s", name="u", url_list=["z.com", "a.com"]),
            None,
        )
        assert state.get("url_list") == ["a.com", "z.com"]

    def test_prefix_list(self) -> None:
        """Test prefix lists are loaded as sets."""
        record = load_prefix_list(
            DeclaredState({"rulestack": "s", "name": "p", "prefix_list": ["10.0.0.0/8"] * 2})
        )

        assert record.prefix_list == ["10.0.0.0/8"]


class TestRulestack:
    """Tests for rulestack mapping."""

    def test_profile_config_unwrapped(self) -> None:
        """Test the list-of-one profile block becomes the record profile."""
        record = load_rulestack(
            DeclaredState(
                {
                    "name": "stack1",
                    "profile_config": [{"anti_virus": "custom", "url_filtering": "BestPractice"}],
                    "tags": {"env": "prod"},
                }
            )
        )

        assert record.name == "stack1"
        assert record.entry.profile.anti_virus == "custom"
        assert record.entry.profile.anti_spyware == "BestPractice"
        assert record.entry.tags == [TagDetails(key="env", value="prod")]

    def test_missing_profile_uses_defaults(self) -> None:
        """Test a rulestack without profile_config gets default profiles."""
        record = load_rulestack(DeclaredState({"name": "stack1"}))

        assert record.entry.profile == ProfileConfig()
        assert record.entry.tags == []

    def test_save_wraps_profile_and_empty_tags(self) -> None:
        """Test saving always writes a one-element profile list and a tag mapping."""
        state = DeclaredState()
        response = RulestackReadResponse(
            name="stack1",
            state="Committed",
            candidate=RulestackDetails(description="d", tags=None, update_token="t1"),
        )

        save_rulestack(state, {"name": "stack1"}, response.candidate, response)

        assert state.get("profile_config") == [ProfileConfig().model_dump()]
        assert state.get("tags") == {}
        assert state.get("state") == "Committed"
        assert state.get("update_token") == "t1"


class TestFirewall:
    """Tests for firewall mapping."""

    def test_load_firewall(self) -> None:
        """Test declared subnet mappings and defaults on load."""
        record = load_firewall(
            DeclaredState(
                {
                    "name": "fw1",
                    "vpc_id": "vpc-1",
                    "subnet_mapping": [{"subnet_id": "subnet-a", "az": "use1-az1"}],
                }
            )
        )

        assert record.subnet_mappings == [
            SubnetMapping(subnet_id="subnet-a", availability_zone="use1-az1")
        ]
        assert record.automatic_upgrade_app_id_version is True
        assert record.endpoint_mode == "ServiceManaged"
        assert record.tags == []

    def test_save_firewall(self) -> None:
        """Test saving firewall fields and status."""
        firewall = FirewallInfo(
            name="fw1",
            vpc_id="vpc-1",
            account_id="111",
            subnet_mappings=[SubnetMapping(subnet_id="subnet-a", availability_zone="az1")],
            tags=[TagDetails(key="env", value="prod")],
            update_token="tok",
        )
        status = FirewallStatus(
            firewall_status="CREATE_COMPLETE",
            attachments=[Attachment(endpoint_id="vpce-1", status="ACCEPTED", subnet_id="subnet-a")],
        )
        state = DeclaredState()

        save_firewall(
            state,
            {"account_id": "111", "region": "us-east-1", "name": "fw1"},
            firewall,
            FirewallReadResponse(firewall=firewall, status=status),
        )

        assert state.get("subnet_mapping") == [{"subnet_id": "subnet-a", "az": "az1"}]
        assert state.get("tags") == {"env": "prod"}
        assert state.get("status")[0]["firewall_status"] == "CREATE_COMPLETE"
        assert state.get("status")[0]["attachments"][0]["endpoint_id"] == "vpce-1"

    def test_save_firewall_omitted_collections(self) -> None:
        """Test omitted subnet mappings and tags are saved as empty collections."""
        firewall = FirewallInfo(name="fw1")
        state = DeclaredState()

        save_firewall(
            state,
            {"account_id": "", "region": "us-east-1", "name": "fw1"},
            firewall,
            FirewallReadResponse(firewall=firewall),
        )

        assert state.get("subnet_mapping") == []
        assert state.get("tags") == {}
        assert state.get("status") == []

    def test_status_without_attachments(self) -> None:
        """Test status attachments default to an empty list."""
        assert save_status(FirewallStatus())[0]["attachments"] == []
