"""
Teardown of security groups created implicitly for an instance.

When the orchestration layer creates a group on behalf of an instance it tags
the instance with ``"<prefix>-<region>/<groupId>"`` (see ``ownership_tag``).
On teardown the tag is the only link back to the group.
"""

import logging
from typing import Iterable, Optional

from sgbridge.dao.base import MemoizingCache, NetworkGroupAPI
from sgbridge.errors import NotFound
from sgbridge.schemas.security_group import RegionAndNamePortsKey, SecurityGroup
from sgbridge.services import region_scoped_id

logger = logging.getLogger(__name__)

DEFAULT_OWNERSHIP_TAG_PREFIX = "jclouds-sg"


def ownership_tag(group: SecurityGroup, prefix: str = DEFAULT_OWNERSHIP_TAG_PREFIX) -> str:
    """Tag marking *group* as owned by the instance that carries it."""
    return f"{prefix}-{group.id}"


class NodeSecurityGroupCleanup:
    def __init__(
        self,
        network: NetworkGroupAPI,
        cache: MemoizingCache[RegionAndNamePortsKey, SecurityGroup],
        tag_prefix: str = DEFAULT_OWNERSHIP_TAG_PREFIX,
    ) -> None:
        self._network = network
        self._cache = cache
        self._tag_prefix = tag_prefix

    def owned_group_reference(self, tags: Iterable[str]) -> Optional[str]:
        """
        Return the region-scoped group id from the first ownership tag, or
        ``None``.  One separator character follows the prefix.
        """
        for tag in sorted(tags):
            if tag.startswith(self._tag_prefix):
                return tag[len(self._tag_prefix) + 1:]
        return None

    def cleanup_node(self, instance_id: str, tags: Iterable[str]) -> bool:
        """
        Delete the group owned by instance *instance_id*, if any, and drop
        the create-or-reuse cache entries built for it.

        Returns whether a group was found and removed: ``False`` when no tag
        marks an owned group or the group is already gone.
        """
        region = region_scoped_id.decode(instance_id).region
        reference = self.owned_group_reference(tags)
        if reference is None:
            return False

        group_id = region_scoped_id.decode(reference).local_id
        try:
            group = self._network.get_group(region, group_id)
        except NotFound:
            logger.info("Owned security group %s of %s is already gone", group_id, instance_id)
            return False

        logger.debug(">> deleting security group %s (%s) in %s", group.name, group_id, region)
        deleted = self._network.delete_group(region, group_id)
        # Not atomic with the delete; create_if_needed re-checks cached groups.
        # Entries for other port sets point at other groups and stay.
        evicted = self._cache.invalidate_where(
            lambda key, cached: key.region == region and cached.provider_id == group_id
        )
        if not deleted:
            logger.info("Security group %s vanished before it could be deleted", group_id)
            return False
        logger.debug("<< deleted security group %s, %d cache entries evicted", group_id, evicted)
        return True
