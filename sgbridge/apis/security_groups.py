"""
Security group router: all endpoints under /security-groups.

Groups are addressed by their region-scoped id split over two path segments,
so "uk-1/4c1a5e0d" becomes /security-groups/uk-1/4c1a5e0d.  Errors raised by
the store are mapped to HTTP responses by the handlers in ``sgbridge.main``.

Endpoints
─────────
  GET    /security-groups                                  List (optionally ?region=)
  POST   /security-groups                                  Create (no dedup)
  POST   /security-groups/ensure                           Create-or-reuse
  GET    /security-groups/capabilities                     Vendor rule-model facts
  GET    /security-groups/{region}/{local_id}              Get one group
  DELETE /security-groups/{region}/{local_id}              Delete one group
  POST   /security-groups/{region}/{local_id}/permissions         Add rules
  POST   /security-groups/{region}/{local_id}/permissions/revoke  Remove rules
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from sgbridge.dependencies.api import require_scope
from sgbridge.dependencies.store import get_security_group_store
from sgbridge.schemas.security_group import (
    Capabilities,
    CreateSecurityGroupRequest,
    EnsureSecurityGroupRequest,
    Location,
    PermissionsRequest,
    RegionAndNamePortsKey,
    SecurityGroup,
    SecurityGroupListResponse,
)
from sgbridge.services import region_scoped_id
from sgbridge.services.auth import READ_SCOPE, WRITE_SCOPE, Principal
from sgbridge.services.security_group_store import SecurityGroupStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/security-groups", tags=["Security Groups"])


def _as_list(groups: set[SecurityGroup]) -> SecurityGroupListResponse:
    ordered = sorted(groups, key=lambda g: g.id)
    return SecurityGroupListResponse(count=len(ordered), security_groups=ordered)


@router.get(
    "",
    response_model=SecurityGroupListResponse,
    summary="List security groups",
    description="Lists groups in every configured region, or in one region with `?region=`.",
)
def list_security_groups(
    region: Optional[str] = Query(None, examples=["uk-1"]),
    principal: Principal = Depends(require_scope(READ_SCOPE)),
    store: SecurityGroupStore = Depends(get_security_group_store),
) -> SecurityGroupListResponse:
    logger.info("GET /security-groups called by '%s'", principal.username)
    if region is None:
        return _as_list(store.list_security_groups())
    return _as_list(store.list_security_groups_in_location(Location(id=region)))


@router.post(
    "",
    response_model=SecurityGroup,
    status_code=status.HTTP_201_CREATED,
    summary="Create an empty security group",
)
def create_security_group(
    body: CreateSecurityGroupRequest,
    principal: Principal = Depends(require_scope(WRITE_SCOPE)),
    store: SecurityGroupStore = Depends(get_security_group_store),
) -> SecurityGroup:
    logger.info("POST /security-groups called by '%s'", principal.username)
    return store.create_security_group(body.name, Location(id=body.region))


@router.post(
    "/ensure",
    response_model=SecurityGroup,
    summary="Create a security group if needed",
    description=(
        "Returns the group for (region, name, ports), creating it once and opening "
        "each port over TCP to 0.0.0.0/0 and to the group itself."
    ),
)
def ensure_security_group(
    body: EnsureSecurityGroupRequest,
    principal: Principal = Depends(require_scope(WRITE_SCOPE)),
    store: SecurityGroupStore = Depends(get_security_group_store),
) -> SecurityGroup:
    logger.info("POST /security-groups/ensure called by '%s'", principal.username)
    key = RegionAndNamePortsKey(region=body.region, name=body.name, ports=frozenset(body.ports))
    return store.create_if_needed(key)


@router.get(
    "/capabilities",
    response_model=Capabilities,
    summary="Vendor rule-model capabilities",
)
def get_capabilities(
    principal: Principal = Depends(require_scope(READ_SCOPE)),
    store: SecurityGroupStore = Depends(get_security_group_store),
) -> Capabilities:
    return store.capabilities


@router.get(
    "/{region}/{local_id}",
    response_model=SecurityGroup,
    summary="Get a security group by id",
)
def get_security_group(
    region: str,
    local_id: str,
    principal: Principal = Depends(require_scope(READ_SCOPE)),
    store: SecurityGroupStore = Depends(get_security_group_store),
) -> SecurityGroup:
    logger.info("GET /security-groups/%s/%s called by '%s'", region, local_id, principal.username)
    return store.get_security_group_by_id(region_scoped_id.encode(region, local_id))


@router.delete(
    "/{region}/{local_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a security group",
)
def delete_security_group(
    region: str,
    local_id: str,
    principal: Principal = Depends(require_scope(WRITE_SCOPE)),
    store: SecurityGroupStore = Depends(get_security_group_store),
) -> None:
    logger.info(
        "DELETE /security-groups/%s/%s called by '%s'", region, local_id, principal.username
    )
    if not store.remove_security_group(region_scoped_id.encode(region, local_id)):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Security group '{region}/{local_id}' not found.",
        )


@router.post(
    "/{region}/{local_id}/permissions",
    response_model=SecurityGroup,
    summary="Add ingress permissions",
    description="Creates one vendor rule per CIDR block and per peer group id.",
)
def add_permissions(
    region: str,
    local_id: str,
    body: PermissionsRequest,
    principal: Principal = Depends(require_scope(WRITE_SCOPE)),
    store: SecurityGroupStore = Depends(get_security_group_store),
) -> SecurityGroup:
    logger.info("Adding permissions to %s/%s for '%s'", region, local_id, principal.username)
    group = store.get_security_group_by_id(region_scoped_id.encode(region, local_id))
    return store.add_ip_permissions(
        body.protocol, body.from_port, body.to_port, None, body.cidr_blocks, body.group_ids, group
    )


@router.post(
    "/{region}/{local_id}/permissions/revoke",
    response_model=SecurityGroup,
    summary="Remove ingress permissions",
    description="Deletes every vendor rule matching source, protocol and port range.",
)
def revoke_permissions(
    region: str,
    local_id: str,
    body: PermissionsRequest,
    principal: Principal = Depends(require_scope(WRITE_SCOPE)),
    store: SecurityGroupStore = Depends(get_security_group_store),
) -> SecurityGroup:
    logger.info("Revoking permissions on %s/%s for '%s'", region, local_id, principal.username)
    group = store.get_security_group_by_id(region_scoped_id.encode(region, local_id))
    return store.remove_ip_permissions(
        body.protocol, body.from_port, body.to_port, None, body.cidr_blocks, body.group_ids, group
    )
