"""
Node router: security group views and teardown for compute instances.

Endpoints
─────────
  GET  /nodes/{region}/{local_id}/security-groups   Groups visible to the instance
  POST /nodes/{region}/{local_id}/cleanup           Delete the instance's owned group
"""

import logging

from fastapi import APIRouter, Depends

from sgbridge.dependencies.api import require_scope
from sgbridge.dependencies.store import get_node_cleanup, get_security_group_store
from sgbridge.schemas.security_group import (
    CleanupNodeRequest,
    CleanupNodeResponse,
    SecurityGroupListResponse,
)
from sgbridge.services import region_scoped_id
from sgbridge.services.auth import READ_SCOPE, WRITE_SCOPE, Principal
from sgbridge.services.node_cleanup import NodeSecurityGroupCleanup
from sgbridge.services.security_group_store import SecurityGroupStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/nodes", tags=["Nodes"])


@router.get(
    "/{region}/{local_id}/security-groups",
    response_model=SecurityGroupListResponse,
    summary="List security groups for an instance",
    description=(
        "The network API cannot filter by server, so every group in the "
        "instance's region is returned. Unknown instances have no groups."
    ),
)
def list_node_security_groups(
    region: str,
    local_id: str,
    principal: Principal = Depends(require_scope(READ_SCOPE)),
    store: SecurityGroupStore = Depends(get_security_group_store),
) -> SecurityGroupListResponse:
    instance_id = region_scoped_id.encode(region, local_id)
    logger.info("GET security groups of node %s called by '%s'", instance_id, principal.username)
    groups = sorted(store.list_security_groups_for_node(instance_id), key=lambda g: g.id)
    return SecurityGroupListResponse(count=len(groups), security_groups=groups)


@router.post(
    "/{region}/{local_id}/cleanup",
    response_model=CleanupNodeResponse,
    summary="Delete the security group owned by an instance",
    description="Looks for an ownership tag among `tags` and deletes the group it names.",
)
def cleanup_node(
    region: str,
    local_id: str,
    body: CleanupNodeRequest,
    principal: Principal = Depends(require_scope(WRITE_SCOPE)),
    cleanup: NodeSecurityGroupCleanup = Depends(get_node_cleanup),
) -> CleanupNodeResponse:
    instance_id = region_scoped_id.encode(region, local_id)
    logger.info("Cleanup of node %s requested by '%s'", instance_id, principal.username)
    return CleanupNodeResponse(removed=cleanup.cleanup_node(instance_id, body.tags))
