"""
Neutron (OpenStack networking) implementation of NetworkGroupAPI.

All openstacksdk specifics live here: resource-to-schema conversion and the
mapping of SDK exceptions onto the sgbridge error taxonomy.
"""

import functools
import logging
from typing import Any, Callable, Mapping, TypeVar

import keystoneauth1.exceptions
import openstack.exceptions
from openstack.connection import Connection

from sgbridge.dao.base import NetworkGroupAPI
from sgbridge.errors import NotFound, SecurityGroupError, TransportError, VendorConflict
from sgbridge.schemas.vendor import VendorRule, VendorRuleSpec, VendorSecurityGroup

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _catch_openstack_errors(func: Callable[..., T]) -> Callable[..., T]:
    """Wrap any SDK or auth failure not handled by *func* in TransportError."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> T:
        try:
            return func(*args, **kwargs)
        except SecurityGroupError:
            raise
        except (
            openstack.exceptions.SDKException,
            keystoneauth1.exceptions.ClientException,
        ) as exc:
            logger.error("OpenStack networking call %s failed: %s", func.__name__, exc)
            raise TransportError(f"OpenStack call '{func.__name__}' failed", exc) from exc

    return wrapper


def rule_from_openstack(rule: Mapping[str, Any]) -> VendorRule:
    return VendorRule(
        id=rule["id"],
        security_group_id=rule.get("security_group_id"),
        direction=rule["direction"],
        ethertype=rule.get("ethertype") or "IPv4",
        protocol=rule.get("protocol"),
        port_range_min=rule.get("port_range_min"),
        port_range_max=rule.get("port_range_max"),
        remote_ip_prefix=rule.get("remote_ip_prefix"),
        remote_group_id=rule.get("remote_group_id"),
    )


def group_from_openstack(group: Any) -> VendorSecurityGroup:
    return VendorSecurityGroup(
        id=group.id,
        tenant_id=group.project_id or group.tenant_id,
        name=group.name or "",
        description=group.description,
        rules=[rule_from_openstack(r) for r in (group.security_group_rules or [])],
    )


class NeutronGroupAPI(NetworkGroupAPI):
    """
    Parameters
    ----------
    connect : callable
        ``connect(region) -> openstack.connection.Connection``; normally a
        ``sgbridge.cloud.session.ConnectionFactory``.
    """

    def __init__(self, connect: Callable[[str], Connection]) -> None:
        self._connect = connect

    @_catch_openstack_errors
    def list_groups(self, region: str) -> list[VendorSecurityGroup]:
        groups = [group_from_openstack(g) for g in self._connect(region).network.security_groups()]
        logger.debug("Listed %d security group(s) in %s", len(groups), region)
        return groups

    @_catch_openstack_errors
    def get_group(self, region: str, local_id: str) -> VendorSecurityGroup:
        try:
            group = self._connect(region).network.get_security_group(local_id)
        except openstack.exceptions.ResourceNotFound as exc:
            raise NotFound("security group", region, local_id, exc) from exc
        return group_from_openstack(group)

    @_catch_openstack_errors
    def create_group(self, region: str, name: str, description: str) -> VendorSecurityGroup:
        try:
            group = self._connect(region).network.create_security_group(
                name=name,
                description=description,
            )
        except openstack.exceptions.ConflictException as exc:
            raise VendorConflict(region, name, exc) from exc
        logger.info("Created security group '%s' (%s) in %s", name, group.id, region)
        return group_from_openstack(group)

    @_catch_openstack_errors
    def delete_group(self, region: str, local_id: str) -> bool:
        try:
            self._connect(region).network.delete_security_group(local_id, ignore_missing=False)
        except openstack.exceptions.ResourceNotFound:
            logger.warning(
                "Delete called for non-existent security group %s in %s", local_id, region
            )
            return False
        logger.info("Deleted security group %s in %s", local_id, region)
        return True

    @_catch_openstack_errors
    def create_rule(self, region: str, spec: VendorRuleSpec) -> VendorRule:
        attrs = spec.model_dump(mode="json", exclude_none=True)
        rule = self._connect(region).network.create_security_group_rule(**attrs)
        logger.info(
            "Created %s rule %s on security group %s in %s",
            spec.direction.value,
            rule.id,
            spec.security_group_id,
            region,
        )
        return rule_from_openstack(rule.to_dict())

    @_catch_openstack_errors
    def delete_rule(self, region: str, rule_id: str) -> bool:
        try:
            self._connect(region).network.delete_security_group_rule(rule_id, ignore_missing=False)
        except openstack.exceptions.ResourceNotFound:
            logger.warning("Delete called for non-existent rule %s in %s", rule_id, region)
            return False
        logger.info("Deleted rule %s in %s", rule_id, region)
        return True
