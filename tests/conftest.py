import sys
import threading
import time
from pathlib import Path
from typing import Optional

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sgbridge.dao.base import InstanceDirectory, NetworkGroupAPI
from sgbridge.dao.cache import SingleFlightCache
from sgbridge.dao.locations import ConfiguredLocationDirectory
from sgbridge.dependencies.api import get_current_user
from sgbridge.dependencies.store import get_node_cleanup, get_security_group_store
from sgbridge.errors import NotFound, TransportError, VendorConflict
from sgbridge.main import app
from sgbridge.schemas.security_group import Location
from sgbridge.schemas.vendor import Instance, VendorRule, VendorRuleSpec, VendorSecurityGroup
from sgbridge.services.auth import READ_SCOPE, WRITE_SCOPE, Principal
from sgbridge.services.node_cleanup import NodeSecurityGroupCleanup
from sgbridge.services.security_group_store import SecurityGroupStore

UK1 = Location(id="uk-1", description="uk-1", iso3166_codes=frozenset({"GB-SLG"}))
FI1 = Location(id="fi-1", description="fi-1", iso3166_codes=frozenset({"FI-18"}))


class FakeNetworkGroupAPI(NetworkGroupAPI):
    """In-memory Neutron: groups keyed by (region, id), rules kept on the group."""

    def __init__(self) -> None:
        self.groups: dict[tuple[str, str], VendorSecurityGroup] = {}
        self.create_group_calls = 0
        self.conflict_names: set[str] = set()
        self.fail_create_rule = False
        self.create_delay = 0.0
        self._counter = 0
        self._lock = threading.Lock()

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}-{self._counter:04d}"

    def add_group(
        self, region: str, name: str, rules: Optional[list[dict]] = None
    ) -> VendorSecurityGroup:
        with self._lock:
            group_id = self._next_id("sg")
            group = VendorSecurityGroup(
                id=group_id,
                tenant_id="tenant-1",
                name=name,
                rules=[
                    VendorRule(id=self._next_id("rule"), security_group_id=group_id, **rule)
                    for rule in rules or []
                ],
            )
            self.groups[(region, group_id)] = group
            return group

    def list_groups(self, region: str) -> list[VendorSecurityGroup]:
        with self._lock:
            return [g for (r, _), g in self.groups.items() if r == region]

    def get_group(self, region: str, local_id: str) -> VendorSecurityGroup:
        with self._lock:
            group = self.groups.get((region, local_id))
        if group is None:
            raise NotFound("security group", region, local_id)
        return group

    def create_group(self, region: str, name: str, description: str) -> VendorSecurityGroup:
        with self._lock:
            self.create_group_calls += 1
        time.sleep(self.create_delay)
        if name in self.conflict_names:
            raise VendorConflict(region, name)
        return self.add_group(region, name)

    def delete_group(self, region: str, local_id: str) -> bool:
        with self._lock:
            return self.groups.pop((region, local_id), None) is not None

    def create_rule(self, region: str, spec: VendorRuleSpec) -> VendorRule:
        if self.fail_create_rule:
            raise TransportError("rule quota exceeded")
        with self._lock:
            group = self.groups.get((region, spec.security_group_id))
            if group is None:
                raise NotFound("security group", region, spec.security_group_id)
            rule = VendorRule(id=self._next_id("rule"), **spec.model_dump())
            self.groups[(region, group.id)] = group.model_copy(
                update={"rules": [*group.rules, rule]}
            )
            return rule

    def delete_rule(self, region: str, rule_id: str) -> bool:
        with self._lock:
            for key, group in self.groups.items():
                if key[0] != region:
                    continue
                remaining = [r for r in group.rules if r.id != rule_id]
                if len(remaining) != len(group.rules):
                    self.groups[key] = group.model_copy(update={"rules": remaining})
                    return True
        return False


class FakeInstanceDirectory(InstanceDirectory):
    def __init__(self) -> None:
        self.instances: dict[tuple[str, str], Instance] = {}

    def add(self, region: str, local_id: str, tags=()) -> Instance:
        instance = Instance(id=local_id, name=local_id, tags=frozenset(tags))
        self.instances[(region, local_id)] = instance
        return instance

    def get_instance(self, region: str, local_id: str) -> Optional[Instance]:
        return self.instances.get((region, local_id))


@pytest.fixture()
def network() -> FakeNetworkGroupAPI:
    return FakeNetworkGroupAPI()


@pytest.fixture()
def instances() -> FakeInstanceDirectory:
    return FakeInstanceDirectory()


@pytest.fixture()
def cache() -> SingleFlightCache:
    return SingleFlightCache()


@pytest.fixture()
def store(network, instances, cache) -> SecurityGroupStore:
    return SecurityGroupStore(
        network=network,
        instances=instances,
        locations=ConfiguredLocationDirectory({"uk-1": UK1, "fi-1": FI1}),
        cache=cache,
        group_name_prefix="jclouds",
    )


@pytest.fixture()
def cleanup(network, cache) -> NodeSecurityGroupCleanup:
    return NodeSecurityGroupCleanup(network, cache, tag_prefix="jclouds-sg")


@pytest.fixture()
def client(store, cleanup):
    def _override_get_current_user():
        return Principal(username="test-user", scopes=frozenset({READ_SCOPE, WRITE_SCOPE}))

    app.dependency_overrides[get_current_user] = _override_get_current_user
    app.dependency_overrides[get_security_group_store] = lambda: store
    app.dependency_overrides[get_node_cleanup] = lambda: cleanup
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def read_only_client(store, cleanup):
    def _override_get_current_user():
        return Principal(username="viewer", scopes=frozenset({READ_SCOPE}))

    app.dependency_overrides[get_current_user] = _override_get_current_user
    app.dependency_overrides[get_security_group_store] = lambda: store
    app.dependency_overrides[get_node_cleanup] = lambda: cleanup
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
