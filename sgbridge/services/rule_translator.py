"""
Translation between Neutron-style vendor rules and generic ingress permissions.

Everything here is pure: no I/O, no state.  The generic model is ingress-only,
so translation is asymmetric; egress rules never surface.
"""

import logging
from typing import Optional

from sgbridge.schemas.security_group import IpPermission, IpProtocol, Location, SecurityGroup
from sgbridge.schemas.vendor import (
    Direction,
    EtherType,
    VendorRule,
    VendorRuleSpec,
    VendorSecurityGroup,
)
from sgbridge.services import region_scoped_id

logger = logging.getLogger(__name__)

ANY_IPV4 = "0.0.0.0/0"
ANY_IPV6 = "::/0"


def _to_protocol(vendor_protocol: Optional[str]) -> IpProtocol:
    if vendor_protocol is None:
        return IpProtocol.TCP
    try:
        return IpProtocol(vendor_protocol.lower())
    except ValueError:
        logger.debug("Unknown vendor protocol '%s', treating as TCP", vendor_protocol)
        return IpProtocol.TCP


def vendor_rule_to_permission(rule: VendorRule, region_id: str) -> Optional[IpPermission]:
    """
    Translate one vendor rule into a generic permission.

    Returns ``None`` for egress rules and for rules without a port range
    minimum; partially populated vendor responses are dropped, not errored.
    """
    if rule.direction == Direction.EGRESS:
        return None
    if rule.port_range_min is None:
        return None

    from_port = rule.port_range_min
    to_port = rule.port_range_max if rule.port_range_max is not None else from_port

    if rule.remote_group_id is not None:
        source = {"group_id": region_scoped_id.encode(region_id, rule.remote_group_id)}
    elif rule.remote_ip_prefix is not None:
        source = {"cidr_block": rule.remote_ip_prefix}
    else:
        # Neutron treats a rule without a remote as open to everyone
        any_prefix = ANY_IPV6 if rule.ethertype == EtherType.IPV6 else ANY_IPV4
        source = {"cidr_block": any_prefix}

    return IpPermission(
        protocol=_to_protocol(rule.protocol),
        from_port=from_port,
        to_port=to_port,
        **source,
    )


def vendor_group_to_security_group(group: VendorSecurityGroup, location: Location) -> SecurityGroup:
    """Build the generic, region-qualified view of a vendor group."""
    permissions = frozenset(
        p
        for p in (vendor_rule_to_permission(rule, location.id) for rule in group.rules)
        if p is not None
    )
    return SecurityGroup(
        id=region_scoped_id.encode(location.id, group.id),
        provider_id=group.id,
        owner_id=group.tenant_id,
        name=group.name,
        location=location,
        permissions=permissions,
    )


def permission_to_vendor_rule_spec(
    permission: IpPermission,
    security_group_id: str,
    direction: Direction = Direction.INGRESS,
) -> VendorRuleSpec:
    """
    Build the vendor "create rule" payload for *permission* on the group with
    local id *security_group_id*.

    A group source is sent as its local (region-stripped) id.
    """
    protocol = None if permission.protocol == IpProtocol.ALL else permission.protocol.value

    if permission.group_id is not None:
        return VendorRuleSpec(
            security_group_id=security_group_id,
            direction=direction,
            ethertype=EtherType.IPV4,
            protocol=protocol,
            port_range_min=permission.from_port,
            port_range_max=permission.to_port,
            remote_group_id=region_scoped_id.decode(permission.group_id).local_id,
        )

    ethertype = EtherType.IPV6 if ":" in permission.cidr_block else EtherType.IPV4
    return VendorRuleSpec(
        security_group_id=security_group_id,
        direction=direction,
        ethertype=ethertype,
        protocol=protocol,
        port_range_min=permission.from_port,
        port_range_max=permission.to_port,
        remote_ip_prefix=permission.cidr_block,
    )


def rule_matches_permission(rule: VendorRule, permission: IpPermission) -> bool:
    """
    Deletion predicate: same remote reference, same protocol name, same
    from/to ports.  A null vendor field never matches.
    """
    if permission.cidr_block is not None:
        if rule.remote_ip_prefix is None or rule.remote_ip_prefix != permission.cidr_block:
            return False
    else:
        local_group_id = region_scoped_id.decode(permission.group_id).local_id
        if rule.remote_group_id is None or rule.remote_group_id != local_group_id:
            return False

    return (
        rule.protocol is not None
        and rule.protocol.lower() == permission.protocol.value
        and rule.port_range_min is not None
        and rule.port_range_min == permission.from_port
        and rule.port_range_max is not None
        and rule.port_range_max == permission.to_port
    )
