"""
Security group store: lifecycle operations against the vendor network API,
expressed in the generic, region-qualified model.

The store is the only stateful, networked component.  Its collaborators are
passed in through the constructor (see ``sgbridge.dao.base``), which keeps
the translation layer pure and lets tests substitute in-memory fakes.
"""

import logging
from typing import Iterable, Optional

from sgbridge.dao.base import InstanceDirectory, LocationDirectory, MemoizingCache, NetworkGroupAPI
from sgbridge.errors import MalformedIdentifier, NotFound, UnsupportedRegion, VendorConflict
from sgbridge.schemas.security_group import (
    Capabilities,
    IpPermission,
    IpProtocol,
    Location,
    RegionAndNamePortsKey,
    SecurityGroup,
)
from sgbridge.schemas.vendor import VendorSecurityGroup
from sgbridge.services import region_scoped_id
from sgbridge.services.rule_translator import (
    ANY_IPV4,
    permission_to_vendor_rule_spec,
    rule_matches_permission,
    vendor_group_to_security_group,
)

logger = logging.getLogger(__name__)

GROUP_DESCRIPTION = "security group created by sgbridge"


class SecurityGroupStore:
    """
    Parameters
    ----------
    network : NetworkGroupAPI
        Region-local vendor security group calls.
    instances : InstanceDirectory
        Used by ``list_security_groups_for_node``.
    locations : LocationDirectory
        The configured regions.
    cache : MemoizingCache
        Single-flight cache behind ``create_if_needed``.
    group_name_prefix : str
        Naming convention applied by ``create_security_group``.
    """

    capabilities = Capabilities(
        tenant_id_group_name_pairs=False,
        tenant_id_group_id_pairs=False,
        group_ids=True,
        port_ranges_for_groups=False,
        exclusion_cidr_blocks=False,
    )

    def __init__(
        self,
        network: NetworkGroupAPI,
        instances: InstanceDirectory,
        locations: LocationDirectory,
        cache: MemoizingCache[RegionAndNamePortsKey, SecurityGroup],
        group_name_prefix: str = "",
    ) -> None:
        self._network = network
        self._instances = instances
        self._locations = locations
        self._cache = cache
        self._group_name_prefix = group_name_prefix

    # ── Internal helpers ──────────────────────────────────────────────────────

    def _location(self, region: Optional[str]) -> Location:
        if not region:
            raise UnsupportedRegion(region)
        return self._locations.get(region)

    def _group_ref(self, group: SecurityGroup) -> region_scoped_id.RegionAndId:
        ref = region_scoped_id.decode(group.id)
        if ref.region != group.location.id:
            raise MalformedIdentifier(
                group.id, f"region does not match location '{group.location.id}'"
            )
        self._location(ref.region)
        return ref

    def _translate(self, group: VendorSecurityGroup, location: Location) -> SecurityGroup:
        return vendor_group_to_security_group(group, location)

    def _find_by_name(self, region: str, name: str) -> Optional[VendorSecurityGroup]:
        return next((g for g in self._network.list_groups(region) if g.name == name), None)

    def shared_name_for_group(self, name: str) -> str:
        """Apply the toolkit naming convention to a user supplied group name."""
        if self._group_name_prefix and not name.startswith(f"{self._group_name_prefix}-"):
            return f"{self._group_name_prefix}-{name}"
        return name

    # ── Create ────────────────────────────────────────────────────────────────

    def create_security_group(self, name: str, location: Location) -> SecurityGroup:
        """
        Create an empty group in *location*'s region.

        No deduplication happens here; the vendor allows duplicate names.
        """
        resolved = self._location(location.id)
        group_name = self.shared_name_for_group(name)
        logger.info("Creating security group '%s' in %s", group_name, resolved.id)
        group = self._network.create_group(resolved.id, group_name, GROUP_DESCRIPTION)
        return self._translate(group, resolved)

    def create_if_needed(self, key: RegionAndNamePortsKey) -> SecurityGroup:
        """
        Create-or-reuse: concurrent callers with equal keys share one vendor
        creation and observe the same group.

        The cached group is checked against the vendor on every call; if it
        has been deleted behind the cache's back the entry is dropped and the
        group is created again.
        """
        location = self._location(key.region)
        group = self._cache.get_or_compute(key, self._create_and_open)
        try:
            current = self._network.get_group(key.region, group.provider_id)
        except NotFound:
            # Only the caller that drops the stale entry logs; others join its recreation.
            if self._cache.invalidate_if(key, group):
                logger.warning(
                    "Cached security group %s no longer exists, recreating it", group.id
                )
            return self._cache.get_or_compute(key, self._create_and_open)
        return self._translate(current, location)

    def _create_and_open(self, key: RegionAndNamePortsKey) -> SecurityGroup:
        location = self._location(key.region)
        logger.info("Creating security group %s", key)
        try:
            group = self._network.create_group(key.region, key.name, GROUP_DESCRIPTION)
        except VendorConflict:
            existing = self._find_by_name(key.region, key.name)
            if existing is None:
                raise
            logger.info("Reusing existing security group '%s' (%s)", key.name, existing.id)
            return self._translate(existing, location)

        try:
            self._open_ports(key.region, group.id, key.ports)
            created = self._network.get_group(key.region, group.id)
        except Exception:
            self._rollback(key.region, group.id)
            raise
        logger.info("Created security group %s", region_scoped_id.encode(key.region, group.id))
        return self._translate(created, location)

    def _open_ports(self, region: str, local_id: str, ports: Iterable[int]) -> None:
        """Open each TCP port to the group itself and to 0.0.0.0/0."""
        self_ref = region_scoped_id.encode(region, local_id)
        for port in sorted(ports):
            for source in ({"group_id": self_ref}, {"cidr_block": ANY_IPV4}):
                permission = IpPermission(
                    protocol=IpProtocol.TCP, from_port=port, to_port=port, **source
                )
                spec = permission_to_vendor_rule_spec(permission, local_id)
                self._network.create_rule(region, spec)
            logger.debug("Opened TCP/%d on security group %s", port, self_ref)

    def _rollback(self, region: str, local_id: str) -> None:
        """Best-effort removal of a half-built group; logs but does not re-raise."""
        logger.warning("Rolling back security group %s in %s …", local_id, region)
        try:
            self._network.delete_group(region, local_id)
        except Exception as exc:
            logger.error("Could not delete security group %s: %s", local_id, exc)

    # ── Read ──────────────────────────────────────────────────────────────────

    def list_security_groups(self) -> set[SecurityGroup]:
        """Union of every configured region; empty when there are none."""
        groups: set[SecurityGroup] = set()
        for region in self._locations.region_ids():
            groups |= self.list_security_groups_in_location(self._locations.get(region))
        return groups

    def list_security_groups_in_location(self, location: Location) -> set[SecurityGroup]:
        resolved = self._location(location.id)
        return {self._translate(g, resolved) for g in self._network.list_groups(resolved.id)}

    def list_security_groups_for_node(self, instance_id: str) -> set[SecurityGroup]:
        """
        Groups for the instance *instance_id* ("<region>/<serverId>").

        The vendor API cannot filter groups by server, so every group in the
        instance's region is returned.  A missing instance has no groups.
        """
        ref = region_scoped_id.decode(instance_id)
        location = self._location(ref.region)
        if self._instances.get_instance(ref.region, ref.local_id) is None:
            return set()
        return self.list_security_groups_in_location(location)

    def get_security_group_by_id(self, id: str) -> SecurityGroup:
        """Raises ``NotFound`` when the vendor has no such group."""
        ref = region_scoped_id.decode(id)
        location = self._location(ref.region)
        return self._translate(self._network.get_group(ref.region, ref.local_id), location)

    # ── Delete ────────────────────────────────────────────────────────────────

    def remove_security_group(self, id: str) -> bool:
        """
        Delete the group; returns whether the vendor deleted anything.

        Cache entries pointing at the deleted group are evicted afterwards.
        A concurrent ``create_if_needed`` may still hold the old group until
        its own existence check runs.
        """
        ref = region_scoped_id.decode(id)
        self._location(ref.region)
        deleted = self._network.delete_group(ref.region, ref.local_id)
        if deleted:
            self._cache.invalidate_where(
                lambda key, group: key.region == ref.region and group.provider_id == ref.local_id
            )
        return deleted

    # ── Permissions ───────────────────────────────────────────────────────────

    def add_ip_permission(self, permission: IpPermission, group: SecurityGroup) -> SecurityGroup:
        return self._authorize([permission], group)

    def add_ip_permissions(
        self,
        protocol: IpProtocol,
        from_port: int,
        to_port: int,
        tenant_id_group_name_pairs: Optional[dict[str, list[str]]],
        ip_ranges: Iterable[str],
        group_ids: Iterable[str],
        group: SecurityGroup,
    ) -> SecurityGroup:
        """One vendor rule per CIDR and per peer group id."""
        permissions = self._expand(
            protocol, from_port, to_port, tenant_id_group_name_pairs, ip_ranges, group_ids
        )
        return self._authorize(permissions, group)

    def remove_ip_permission(self, permission: IpPermission, group: SecurityGroup) -> SecurityGroup:
        return self._revoke([permission], group)

    def remove_ip_permissions(
        self,
        protocol: IpProtocol,
        from_port: int,
        to_port: int,
        tenant_id_group_name_pairs: Optional[dict[str, list[str]]],
        ip_ranges: Iterable[str],
        group_ids: Iterable[str],
        group: SecurityGroup,
    ) -> SecurityGroup:
        permissions = self._expand(
            protocol, from_port, to_port, tenant_id_group_name_pairs, ip_ranges, group_ids
        )
        return self._revoke(permissions, group)

    def _expand(
        self,
        protocol: IpProtocol,
        from_port: int,
        to_port: int,
        tenant_id_group_name_pairs: Optional[dict[str, list[str]]],
        ip_ranges: Iterable[str],
        group_ids: Iterable[str],
    ) -> list[IpPermission]:
        if tenant_id_group_name_pairs:
            logger.warning(
                "Tenant/group-name pairs are not supported and were ignored: %s",
                tenant_id_group_name_pairs,
            )
        permissions = [
            IpPermission(protocol=protocol, from_port=from_port, to_port=to_port, cidr_block=cidr)
            for cidr in ip_ranges
        ]
        permissions += [
            IpPermission(protocol=protocol, from_port=from_port, to_port=to_port, group_id=group_id)
            for group_id in group_ids
        ]
        return permissions

    def _authorize(self, permissions: list[IpPermission], group: SecurityGroup) -> SecurityGroup:
        ref = self._group_ref(group)
        for permission in permissions:
            spec = permission_to_vendor_rule_spec(permission, ref.local_id)
            self._network.create_rule(ref.region, spec)
        return self.get_security_group_by_id(ref.encode())

    def _revoke(self, permissions: list[IpPermission], group: SecurityGroup) -> SecurityGroup:
        """Delete every vendor rule matching any of *permissions*."""
        ref = self._group_ref(group)
        current = self._network.get_group(ref.region, ref.local_id)
        deleted: set[str] = set()
        for permission in permissions:
            for rule in current.rules:
                if rule.id in deleted or not rule_matches_permission(rule, permission):
                    continue
                self._network.delete_rule(ref.region, rule.id)
                deleted.add(rule.id)
        logger.info("Removed %d rule(s) from security group %s", len(deleted), ref.encode())
        return self.get_security_group_by_id(ref.encode())
