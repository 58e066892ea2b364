"""
FastAPI dependencies for the security group store and node cleanup.

Routes declare `store: SecurityGroupStore = Depends(get_security_group_store)`.
Both objects share one OpenStack connection factory and one create-or-reuse
cache, built on first use so importing the app needs no credentials.

Tests swap the backend by overriding the dependencies:

    app.dependency_overrides[get_security_group_store] = lambda: fake_store
"""

from functools import lru_cache

from sgbridge.cloud.neutron import NeutronGroupAPI
from sgbridge.cloud.nova import NovaInstanceDirectory
from sgbridge.cloud.session import ConnectionFactory
from sgbridge.config import settings
from sgbridge.dao.cache import SingleFlightCache
from sgbridge.dao.locations import ConfiguredLocationDirectory
from sgbridge.services.node_cleanup import NodeSecurityGroupCleanup
from sgbridge.services.security_group_store import SecurityGroupStore


@lru_cache(maxsize=1)
def _components() -> tuple[SecurityGroupStore, NodeSecurityGroupCleanup]:
    connect = ConnectionFactory(settings)
    network = NeutronGroupAPI(connect)
    cache = SingleFlightCache()
    store = SecurityGroupStore(
        network=network,
        instances=NovaInstanceDirectory(connect),
        locations=ConfiguredLocationDirectory.from_settings(settings),
        cache=cache,
        group_name_prefix=settings.group_name_prefix,
    )
    cleanup = NodeSecurityGroupCleanup(network, cache, tag_prefix=settings.ownership_tag_prefix)
    return store, cleanup


def get_security_group_store() -> SecurityGroupStore:
    """Return the process-wide SecurityGroupStore."""
    return _components()[0]


def get_node_cleanup() -> NodeSecurityGroupCleanup:
    """Return the process-wide NodeSecurityGroupCleanup."""
    return _components()[1]
