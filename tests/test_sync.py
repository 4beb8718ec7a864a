"""Integration tests for sync passes over declared objects.

Runs the full path (declared objects, state store, reconciler) against the
in-memory NGFW mock.
"""

from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest
from ngfw_mock import MockNgfwContext, mock_ngfw_context

from ngfw_controller.kinds import CERTIFICATE, FIREWALL, RULESTACK, get_kind
from ngfw_controller.reconciler import Reconciler
from ngfw_controller.spec_loader import DeclaredObject, declared_key, parse_document
from ngfw_controller.state import DeclaredState
from ngfw_controller.state_store import StateStore
from ngfw_controller.sync import SyncAction, Syncer, compute_drift

REGION = "us-east-1"


def _rulestack(**fields: Any) -> DeclaredObject:
    return parse_document(
        {"kind": "Rulestack", "name": "stack1", "profileConfig": {}, **fields}, "t"
    )


def _certificate(**fields: Any) -> DeclaredObject:
    return parse_document(
        {
            "kind": "Certificate",
            "rulestack": "stack1",
            "name": "cert1",
            "selfSigned": True,
            **fields,
        },
        "t",
    )


def _prefix_list() -> DeclaredObject:
    return parse_document(
        {
            "kind": "PrefixList",
            "rulestack": "stack1",
            "name": "office",
            "prefixList": ["10.0.0.0/8"],
        },
        "t",
    )


def _firewall(**fields: Any) -> DeclaredObject:
    return parse_document(
        {
            "kind": "Firewall",
            "name": "fw1",
            "vpcId": "vpc-1",
            "subnetMapping": [{"subnetId": "subnet-a"}],
            **fields,
        },
        "t",
    )


@pytest.fixture
def ctx() -> Generator[MockNgfwContext, None, None]:
    with mock_ngfw_context(region=REGION, account_id="111") as context:
        yield context


@pytest.fixture
def store(tmp_path: Path) -> StateStore:
    return StateStore(tmp_path / "state.yaml")


def _syncer(ctx: MockNgfwContext, store: StateStore, **kwargs: Any) -> Syncer:
    return Syncer(ctx.clients, store, region=REGION, **kwargs)


class TestComputeDrift:
    """Tests for drift planning."""

    def test_only_declared_fields_compared(self) -> None:
        """Test fields missing from the declaration never count as drift."""
        assert compute_drift(CERTIFICATE, {"name": "c"}, {"name": "c", "description": "x"}) == []

    def test_changed_field(self) -> None:
        """Test a differing declared field is drift."""
        assert compute_drift(CERTIFICATE, {"description": "a"}, {"description": "b"}) == [
            "description"
        ]

    def test_write_only_and_computed_ignored(self) -> None:
        """Test audit comments and computed fields are never drift."""
        declared = {"audit_comment": "new", "update_token": "x"}

        refreshed = {"audit_comment": "", "update_token": "y"}

        assert compute_drift(CERTIFICATE, declared, refreshed) == []

    def test_subnet_order_ignored(self) -> None:
        """Test subnet mappings compare as a set of subnet ids."""
        declared = {"subnet_mapping": [{"subnet_id": "b", "az": ""}, {"subnet_id": "a", "az": ""}]}
        refreshed = {"subnet_mapping": [{"subnet_id": "a", "az": ""}, {"subnet_id": "b", "az": ""}]}

        assert compute_drift(FIREWALL, declared, refreshed) == []

    def test_subnet_az_ignored(self) -> None:
        """Test an availability zone difference alone is not drift."""
        declared = {"subnet_mapping": [{"subnet_id": "a", "az": "use1-az1"}]}
        refreshed = {"subnet_mapping": [{"subnet_id": "a", "az": ""}]}

        assert compute_drift(FIREWALL, declared, refreshed) == []

    def test_subnet_added_is_drift(self) -> None:
        """Test a new subnet id is drift."""
        declared = {"subnet_mapping": [{"subnet_id": "a"}, {"subnet_id": "c"}]}
        refreshed = {"subnet_mapping": [{"subnet_id": "a"}]}

        assert compute_drift(FIREWALL, declared, refreshed) == ["subnet_mapping"]


class TestSync:
    """Tests for Syncer.sync."""

    @pytest.mark.asyncio
    async def test_creates_untracked_objects(self, ctx: MockNgfwContext, store: StateStore) -> None:
        """Test a first pass creates every object and tracks its id."""
        objects = [_rulestack(), _certificate(), _prefix_list(), _firewall()]

        result = await _syncer(ctx, store).sync(objects)

        assert result.success
        assert [o.action for o in result.objects] == [SyncAction.CREATE] * 4
        assert [o.object_id for o in result.objects] == [
            "stack1",
            "stack1:cert1",
            "stack1:office",
            "111:us-east-1:fw1",
        ]
        assert ctx.state.object_count == 4

        reloaded = StateStore(store.path)
        reloaded.load()
        assert reloaded.keys() == [
            "certificate/stack1:cert1",
            "firewall/:fw1",
            "prefix_list/stack1:office",
            "rulestack/stack1",
        ]

    @pytest.mark.asyncio
    async def test_second_pass_is_noop(self, ctx: MockNgfwContext, store: StateStore) -> None:
        """Test an unchanged declaration only reads on the next pass."""
        objects = [_rulestack(), _certificate(), _firewall()]
        await _syncer(ctx, store).sync(objects)
        ctx.state.calls.clear()

        result = await _syncer(ctx, store).sync(objects)

        assert [o.action for o in result.objects] == [SyncAction.NOOP] * 3
        assert {c.method for c in ctx.state.calls} == {"read"}

    @pytest.mark.asyncio
    async def test_updates_drift(self, ctx: MockNgfwContext, store: StateStore) -> None:
        """Test a changed declaration updates only what changed."""
        await _syncer(ctx, store).sync([_rulestack(), _firewall()])
        ctx.state.calls.clear()

        result = await _syncer(ctx, store).sync(
            [_rulestack(), _firewall(description="edge", subnetMapping=[{"subnetId": "subnet-b"}])]
        )

        fw_result = result.objects[1]
        assert fw_result.action is SyncAction.UPDATE
        assert fw_result.drift == ["description", "subnet_mapping"]
        assert [c.method for c in ctx.state.calls_for(FIREWALL)] == [
            "read",
            "update_description",
            "update_subnet_mappings",
            "read",
        ]
        tracked = store.get("firewall/:fw1")
        assert tracked is not None
        assert tracked.fields["subnet_mapping"] == [{"subnet_id": "subnet-b", "az": ""}]

    @pytest.mark.asyncio
    async def test_out_of_band_change_reverted(
        self, ctx: MockNgfwContext, store: StateStore
    ) -> None:
        """Test a remote edit of a declared field is reverted."""
        await _syncer(ctx, store).sync([_rulestack(), _certificate(description="managed")])
        ctx.state.edit(CERTIFICATE, ("stack1", "cert1"), description="hand edit")

        result = await _syncer(ctx, store).sync([_rulestack(), _certificate(description="managed")])

        assert result.objects[1].action is SyncAction.UPDATE
        remote = ctx.state.objects[CERTIFICATE][("stack1", "cert1")]
        assert remote.candidate.description == "managed"

    @pytest.mark.asyncio
    async def test_recreates_vanished_object(self, ctx: MockNgfwContext, store: StateStore) -> None:
        """Test a tracked object deleted out of band is created again."""
        await _syncer(ctx, store).sync([_rulestack()])
        ctx.state.vanish(RULESTACK, "stack1")

        result = await _syncer(ctx, store).sync([_rulestack()])

        assert result.objects[0].action is SyncAction.CREATE
        assert "stack1" in ctx.state.rulestacks

    @pytest.mark.asyncio
    async def test_dry_run(self, ctx: MockNgfwContext, store: StateStore) -> None:
        """Test dry run plans without mutating calls or state writes."""
        result = await _syncer(ctx, store, dry_run=True).sync([_rulestack(), _certificate()])

        assert result.dry_run
        assert [o.action for o in result.objects] == [SyncAction.CREATE, SyncAction.CREATE]
        assert ctx.state.calls == []
        assert not store.path.exists()

    @pytest.mark.asyncio
    async def test_errors_do_not_stop_pass(self, ctx: MockNgfwContext, store: StateStore) -> None:
        """Test one failing object is recorded and the rest still sync."""
        ctx.state.fail(CERTIFICATE, "create")

        result = await _syncer(ctx, store).sync([_rulestack(), _certificate(), _prefix_list()])

        assert not result.success
        assert result.counts["error"] == 1
        assert result.counts["create"] == 2
        assert result.errors[0].key == "certificate/stack1:cert1"
        assert "prefix_list/stack1:office" in store

    @pytest.mark.asyncio
    async def test_prune(self, ctx: MockNgfwContext, store: StateStore) -> None:
        """Test tracked objects no longer declared are deleted with prune."""
        await _syncer(ctx, store).sync([_rulestack(), _certificate()])

        result = await _syncer(ctx, store, prune=True).sync([_rulestack()])

        assert result.objects[-1].action is SyncAction.DELETE
        assert result.objects[-1].key == "certificate/stack1:cert1"
        assert ctx.state.objects[CERTIFICATE] == {}
        assert "certificate/stack1:cert1" not in store

    @pytest.mark.asyncio
    async def test_no_prune_by_default(self, ctx: MockNgfwContext, store: StateStore) -> None:
        """Test undeclared objects are left alone without prune."""
        await _syncer(ctx, store).sync([_rulestack(), _certificate()])

        result = await _syncer(ctx, store).sync([_rulestack()])

        assert len(result.objects) == 1
        assert ("stack1", "cert1") in ctx.state.objects[CERTIFICATE]

    @pytest.mark.asyncio
    async def test_missing_client(self, store: StateStore) -> None:
        """Test a kind without a client is reported as an object error."""
        result = await Syncer({}, store, region=REGION).sync([_rulestack()])

        assert "No client configured" in str(result.objects[0].error)

    @pytest.mark.asyncio
    async def test_partial_update_keeps_tracking(
        self, ctx: MockNgfwContext, store: StateStore
    ) -> None:
        """Test a partial update is reported and the next pass finishes the job."""
        await _syncer(ctx, store).sync([_firewall()])
        changed = _firewall(description="edge", subnetMapping=[{"subnetId": "subnet-b"}])
        ctx.state.fail(FIREWALL, "update_subnet_mappings")

        result = await _syncer(ctx, store).sync([changed])
        assert type(result.objects[0].error).__name__ == "PartialUpdateError"
        assert "firewall/:fw1" in store

        ctx.state.clear_failures()
        result = await _syncer(ctx, store).sync([changed])

        assert result.objects[0].drift == ["subnet_mapping"]
        assert result.success


class TestConvergence:
    """Tests for repeated passes settling on no changes."""

    @pytest.mark.asyncio
    async def test_reordered_subnets_converge(
        self, ctx: MockNgfwContext, store: StateStore
    ) -> None:
        """Test a subnet list in another order than the server's settles to noop."""
        await _syncer(ctx, store).sync([_firewall()])
        changed = _firewall(subnetMapping=[{"subnetId": "subnet-c"}, {"subnetId": "subnet-a"}])

        actions = []
        for _ in range(3):
            result = await _syncer(ctx, store).sync([changed])
            actions.append(result.objects[0].action)

        assert actions == [SyncAction.UPDATE, SyncAction.NOOP, SyncAction.NOOP]
        assert len(ctx.state.calls_for(FIREWALL, "update_subnet_mappings")) == 1

    @pytest.mark.asyncio
    async def test_az_only_change_is_noop(self, ctx: MockNgfwContext, store: StateStore) -> None:
        """Test declaring an availability zone for a known subnet changes nothing."""
        await _syncer(ctx, store).sync([_firewall()])
        changed = _firewall(subnetMapping=[{"subnetId": "subnet-a", "az": "use1-az1"}])

        result = await _syncer(ctx, store).sync([changed])

        assert result.objects[0].action is SyncAction.NOOP
        assert ctx.state.calls_for(FIREWALL, "update_subnet_mappings") == []


class TestTrackedMatching:
    """Tests for matching tracked entries stored under another key."""

    @pytest.mark.asyncio
    async def test_imported_firewall_survives_prune(
        self, ctx: MockNgfwContext, store: StateStore
    ) -> None:
        """Test an imported firewall is adopted by a declaration without account id."""
        reconciler = Reconciler(get_kind(FIREWALL), ctx.clients[FIREWALL], region=REGION)
        await reconciler.create(DeclaredState(_firewall().fields))
        imported = DeclaredState()
        await reconciler.import_state(imported, "111:us-east-1:fw1")
        imported_key = declared_key(FIREWALL, imported.fields)
        store.put(imported_key, imported.id, imported.fields)
        store.save()
        ctx.state.calls.clear()

        result = await _syncer(ctx, store, prune=True).sync([_firewall()])

        assert imported_key == "firewall/111:fw1"
        assert [(o.key, o.action) for o in result.objects] == [
            ("firewall/:fw1", SyncAction.NOOP)
        ]
        assert result.success
        assert ("111", "fw1") in ctx.state.firewalls
        assert {c.method for c in ctx.state.calls} == {"read"}
        assert store.keys() == ["firewall/:fw1"]
        assert len(store) == 1

    def test_ambiguous_match_is_ignored(self, ctx: MockNgfwContext, store: StateStore) -> None:
        """Test an identity matching several tracked entries matches none."""
        store.put("firewall/111:fw1", "111:us-east-1:fw1", {"account_id": "111", "name": "fw1"})
        store.put("firewall/222:fw1", "222:us-east-1:fw1", {"account_id": "222", "name": "fw1"})
        syncer = _syncer(ctx, store)
        obj = _firewall()

        assert syncer.find_tracked(obj, {obj.key}, set()) is None

        obj_222 = _firewall(accountId="222")
        assert syncer.find_tracked(obj_222, {obj_222.key}, set()) == "firewall/222:fw1"

    def test_entry_owned_by_other_declaration_not_matched(
        self, ctx: MockNgfwContext, store: StateStore
    ) -> None:
        """Test an entry whose key is declared elsewhere in the pass is left to it."""
        store.put("firewall/111:fw1", "111:us-east-1:fw1", {"account_id": "111", "name": "fw1"})
        obj = _firewall()

        found = _syncer(ctx, store).find_tracked(obj, {obj.key, "firewall/111:fw1"}, set())

        assert found is None
