import threading

import pytest

from conftest import FI1, UK1
from sgbridge.dao.locations import ConfiguredLocationDirectory
from sgbridge.errors import (
    MalformedIdentifier,
    NotFound,
    TransportError,
    UnsupportedRegion,
    VendorConflict,
)
from sgbridge.schemas.security_group import (
    IpPermission,
    IpProtocol,
    Location,
    RegionAndNamePortsKey,
)
from sgbridge.services.security_group_store import GROUP_DESCRIPTION, SecurityGroupStore

WEB_KEY = RegionAndNamePortsKey(region="uk-1", name="web", ports=frozenset({80, 443}))


def _tcp(port, **source):
    return IpPermission(protocol=IpProtocol.TCP, from_port=port, to_port=port, **source)


# ── create_if_needed ──────────────────────────────────────────────────────────

def test_create_if_needed_opens_ports_to_world_and_self(store, network):
    group = store.create_if_needed(WEB_KEY)

    assert group.name == "web"
    assert group.id == f"uk-1/{group.provider_id}"
    assert group.location == UK1
    assert group.permissions == frozenset(
        {
            _tcp(80, cidr_block="0.0.0.0/0"),
            _tcp(443, cidr_block="0.0.0.0/0"),
            _tcp(80, group_id=group.id),
            _tcp(443, group_id=group.id),
        }
    )
    vendor_group = network.get_group("uk-1", group.provider_id)
    assert vendor_group.name == "web"
    assert {r.remote_group_id for r in vendor_group.rules} == {None, group.provider_id}


def test_create_if_needed_reuses_cached_group(store, network):
    first = store.create_if_needed(WEB_KEY)
    second = store.create_if_needed(
        RegionAndNamePortsKey(region="uk-1", name="web", ports=frozenset({443, 80}))
    )

    assert first == second
    assert network.create_group_calls == 1


def test_different_ports_create_different_groups(store, network):
    store.create_if_needed(WEB_KEY)
    store.create_if_needed(RegionAndNamePortsKey(region="uk-1", name="web", ports=frozenset({22})))

    assert network.create_group_calls == 2


def test_concurrent_create_if_needed_creates_once(store, network):
    barrier = threading.Barrier(8)
    results = []

    def worker():
        barrier.wait(timeout=5)
        results.append(store.create_if_needed(WEB_KEY))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)

    assert network.create_group_calls == 1
    assert len(results) == 8
    assert len({group.id for group in results}) == 1


def test_failed_creation_is_rolled_back_and_not_cached(store, network, cache):
    network.fail_create_rule = True

    with pytest.raises(TransportError):
        store.create_if_needed(WEB_KEY)

    assert network.list_groups("uk-1") == []
    assert WEB_KEY not in cache

    network.fail_create_rule = False
    group = store.create_if_needed(WEB_KEY)

    assert network.create_group_calls == 2
    assert len(group.permissions) == 4


def test_conflict_reuses_existing_group_by_name(store, network):
    existing = network.add_group("uk-1", "web")
    network.conflict_names.add("web")

    group = store.create_if_needed(WEB_KEY)

    assert group.provider_id == existing.id
    assert len(network.list_groups("uk-1")) == 1


def test_conflict_without_visible_group_propagates(store, network, cache):
    network.conflict_names.add("web")

    with pytest.raises(VendorConflict):
        store.create_if_needed(WEB_KEY)
    assert WEB_KEY not in cache


def test_cached_group_deleted_elsewhere_is_recreated(store, network):
    first = store.create_if_needed(WEB_KEY)
    network.delete_group("uk-1", first.provider_id)

    second = store.create_if_needed(WEB_KEY)

    assert second.provider_id != first.provider_id
    assert network.create_group_calls == 2


def test_concurrent_callers_with_stale_entry_recreate_once(store, network, cache):
    stale = store.create_if_needed(WEB_KEY)
    network.delete_group("uk-1", stale.provider_id)
    network.create_delay = 0.2
    barrier = threading.Barrier(4)
    results = []

    def worker():
        barrier.wait(timeout=5)
        results.append(store.create_if_needed(WEB_KEY))

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)

    assert network.create_group_calls == 2
    assert len(results) == 4
    assert len({group.provider_id for group in results}) == 1
    assert results[0].provider_id != stale.provider_id
    assert [g.id for g in network.list_groups("uk-1")] == [results[0].provider_id]
    assert WEB_KEY in cache


def test_create_if_needed_rejects_unknown_region(store, network):
    with pytest.raises(UnsupportedRegion):
        store.create_if_needed(RegionAndNamePortsKey(region="us-1", name="web"))
    assert network.create_group_calls == 0


# ── create_security_group ─────────────────────────────────────────────────────

def test_create_security_group_applies_naming_convention(store, network):
    group = store.create_security_group("db", UK1)

    assert group.name == "jclouds-db"
    assert group.permissions == frozenset()
    assert network.get_group("uk-1", group.provider_id).name == "jclouds-db"


def test_create_security_group_does_not_deduplicate(store, network):
    store.create_security_group("db", UK1)
    store.create_security_group("db", UK1)

    assert len(network.list_groups("uk-1")) == 2


def test_shared_name_is_not_prefixed_twice(store):
    assert store.shared_name_for_group("jclouds-db") == "jclouds-db"


def test_create_security_group_uses_fixed_description(network, instances, cache):
    captured = {}

    class RecordingNetwork(type(network)):
        def create_group(self, region, name, description):
            captured["description"] = description
            return super().create_group(region, name, description)

    recording_store = SecurityGroupStore(
        network=RecordingNetwork(),
        instances=instances,
        locations=ConfiguredLocationDirectory({"uk-1": UK1}),
        cache=cache,
    )
    recording_store.create_security_group("db", UK1)

    assert captured["description"] == GROUP_DESCRIPTION


# ── Read ──────────────────────────────────────────────────────────────────────

def test_list_security_groups_spans_regions(store, network):
    network.add_group("uk-1", "a")
    network.add_group("fi-1", "b")

    groups = store.list_security_groups()

    assert {(g.location.id, g.name) for g in groups} == {("uk-1", "a"), ("fi-1", "b")}


def test_list_security_groups_empty_regions(network, instances, cache):
    empty = SecurityGroupStore(network, instances, ConfiguredLocationDirectory({}), cache)
    assert empty.list_security_groups() == set()


def test_list_security_groups_in_location(store, network):
    network.add_group("uk-1", "a")
    network.add_group("fi-1", "b")

    groups = store.list_security_groups_in_location(FI1)

    assert [g.name for g in groups] == ["b"]
    assert next(iter(groups)).location == FI1


def test_list_security_groups_in_unknown_location(store):
    with pytest.raises(UnsupportedRegion):
        store.list_security_groups_in_location(Location(id="us-1"))


def test_list_security_groups_for_node(store, network, instances):
    network.add_group("uk-1", "a")
    instances.add("uk-1", "server-1")

    assert {g.name for g in store.list_security_groups_for_node("uk-1/server-1")} == {"a"}


def test_list_security_groups_for_missing_node_is_empty(store, network):
    network.add_group("uk-1", "a")

    assert store.list_security_groups_for_node("uk-1/missing") == set()


def test_list_security_groups_for_node_rejects_malformed_id(store):
    with pytest.raises(MalformedIdentifier):
        store.list_security_groups_for_node("server-1")


def test_get_security_group_by_id(store, network):
    vendor = network.add_group("uk-1", "a")

    group = store.get_security_group_by_id(f"uk-1/{vendor.id}")

    assert group.name == "a"
    assert group.owner_id == "tenant-1"


def test_get_security_group_by_id_not_found(store):
    with pytest.raises(NotFound):
        store.get_security_group_by_id("uk-1/missing")


def test_get_security_group_by_id_rejects_empty_region(store):
    with pytest.raises(MalformedIdentifier):
        store.get_security_group_by_id("/sg-1")


# ── Delete ────────────────────────────────────────────────────────────────────

def test_remove_security_group(store, network):
    vendor = network.add_group("uk-1", "a")

    assert store.remove_security_group(f"uk-1/{vendor.id}") is True
    assert network.list_groups("uk-1") == []
    assert store.remove_security_group(f"uk-1/{vendor.id}") is False


def test_remove_security_group_evicts_cache_entry(store, network, cache):
    group = store.create_if_needed(WEB_KEY)

    store.remove_security_group(group.id)

    assert WEB_KEY not in cache
    assert store.create_if_needed(WEB_KEY).provider_id != group.provider_id


# ── Permissions ───────────────────────────────────────────────────────────────

def test_add_ip_permissions_creates_rule_per_source(store, network):
    group = store.create_security_group("db", UK1)
    peer = store.create_security_group("app", UK1)

    updated = store.add_ip_permissions(
        IpProtocol.TCP, 5432, 5432, None, ["10.0.0.0/8", "192.168.0.0/16"], [peer.id], group
    )

    assert updated.permissions == frozenset(
        {
            _tcp(5432, cidr_block="10.0.0.0/8"),
            _tcp(5432, cidr_block="192.168.0.0/16"),
            _tcp(5432, group_id=peer.id),
        }
    )
    assert len(network.get_group("uk-1", group.provider_id).rules) == 3


def test_add_ip_permissions_ignores_tenant_group_name_pairs(store, network):
    group = store.create_security_group("db", UK1)

    updated = store.add_ip_permissions(
        IpProtocol.TCP, 22, 22, {"tenant-1": ["other"]}, ["10.0.0.0/8"], [], group
    )

    assert updated.permissions == frozenset({_tcp(22, cidr_block="10.0.0.0/8")})


def test_add_ip_permission(store):
    group = store.create_security_group("db", UK1)

    updated = store.add_ip_permission(_tcp(22, cidr_block="10.0.0.0/8"), group)

    assert _tcp(22, cidr_block="10.0.0.0/8") in updated.permissions


def test_add_ip_permission_rejects_mismatched_location(store):
    group = store.create_security_group("db", UK1)
    moved = group.model_copy(update={"location": FI1})

    with pytest.raises(MalformedIdentifier):
        store.add_ip_permission(_tcp(22, cidr_block="10.0.0.0/8"), moved)


def test_remove_ip_permission_deletes_only_matching_rule(store, network):
    group = store.create_security_group("db", UK1)
    group = store.add_ip_permissions(IpProtocol.TCP, 80, 80, None, ["10.0.0.0/8"], [], group)
    group = store.add_ip_permissions(IpProtocol.TCP, 443, 443, None, ["10.0.0.0/8"], [], group)

    updated = store.remove_ip_permission(_tcp(80, cidr_block="10.0.0.0/8"), group)

    assert updated.permissions == frozenset({_tcp(443, cidr_block="10.0.0.0/8")})
    remaining = network.get_group("uk-1", group.provider_id).rules
    assert [(r.port_range_min, r.port_range_max) for r in remaining] == [(443, 443)]


def test_remove_ip_permissions_by_group_id(store, network):
    group = store.create_security_group("db", UK1)
    peer = store.create_security_group("app", UK1)
    group = store.add_ip_permissions(
        IpProtocol.TCP, 5432, 5432, None, ["10.0.0.0/8"], [peer.id], group
    )

    updated = store.remove_ip_permissions(IpProtocol.TCP, 5432, 5432, None, [], [peer.id], group)

    assert updated.permissions == frozenset({_tcp(5432, cidr_block="10.0.0.0/8")})


def test_remove_ip_permission_without_match_is_a_no_op(store, network):
    group = store.create_security_group("db", UK1)
    group = store.add_ip_permissions(IpProtocol.TCP, 80, 80, None, ["10.0.0.0/8"], [], group)

    updated = store.remove_ip_permission(_tcp(8080, cidr_block="10.0.0.0/8"), group)

    assert updated.permissions == group.permissions


def test_capabilities():
    caps = SecurityGroupStore.capabilities
    assert caps.group_ids is True
    assert caps.tenant_id_group_name_pairs is False
    assert caps.tenant_id_group_id_pairs is False
    assert caps.port_ranges_for_groups is False
    assert caps.exclusion_cidr_blocks is False
