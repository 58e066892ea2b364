"""
Abstract collaborators consumed by the security group store.

`SecurityGroupStore` and `NodeSecurityGroupCleanup` depend only on these
contracts.  Concrete implementations (OpenStack SDK, configuration, in-memory
fakes for tests, …) are injected through the constructor, never looked up
from module state.
"""

from abc import ABC, abstractmethod
from typing import Callable, Generic, Optional, TypeVar

from sgbridge.schemas.security_group import Location
from sgbridge.schemas.vendor import Instance, VendorRule, VendorRuleSpec, VendorSecurityGroup

K = TypeVar("K")
V = TypeVar("V")


class NetworkGroupAPI(ABC):
    """Region-local security group calls against the vendor network API."""

    @abstractmethod
    def list_groups(self, region: str) -> list[VendorSecurityGroup]:
        """Return every security group visible in *region*."""

    @abstractmethod
    def get_group(self, region: str, local_id: str) -> VendorSecurityGroup:
        """
        Fetch one group, rules included.

        Raises ``NotFound`` when the vendor has no group with *local_id*.
        """

    @abstractmethod
    def create_group(self, region: str, name: str, description: str) -> VendorSecurityGroup:
        """
        Create an empty group.

        Raises ``VendorConflict`` when the vendor reports it already exists.
        """

    @abstractmethod
    def delete_group(self, region: str, local_id: str) -> bool:
        """Delete a group; ``False`` if it did not exist."""

    @abstractmethod
    def create_rule(self, region: str, spec: VendorRuleSpec) -> VendorRule:
        """Create a rule from *spec* and return it."""

    @abstractmethod
    def delete_rule(self, region: str, rule_id: str) -> bool:
        """Delete a rule; ``False`` if it did not exist."""


class InstanceDirectory(ABC):
    @abstractmethod
    def get_instance(self, region: str, local_id: str) -> Optional[Instance]:
        """Return the instance, or ``None`` when it does not exist."""


class LocationDirectory(ABC):
    @abstractmethod
    def get(self, region_id: str) -> Location:
        """Return the location for *region_id*; ``UnsupportedRegion`` if unknown."""

    @abstractmethod
    def region_ids(self) -> list[str]:
        """Return the configured region ids."""


class MemoizingCache(ABC, Generic[K, V]):
    """
    Read-through cache with single-flight semantics per key: concurrent
    callers of ``get_or_compute`` for the same key share one computation.
    """

    @abstractmethod
    def get_or_compute(self, key: K, compute: Callable[[K], V]) -> V:
        """Return the cached value for *key*, computing it once if absent."""

    @abstractmethod
    def invalidate(self, key: K) -> None:
        """Drop the stored entry for *key*, if any; in-flight computations continue."""

    @abstractmethod
    def invalidate_if(self, key: K, expected: V) -> bool:
        """
        Drop the entry for *key* only while it still holds *expected*.

        Returns whether an entry was dropped.  A computation already in
        flight for *key* is left alone.
        """

    @abstractmethod
    def invalidate_where(self, predicate: Callable[[K, V], bool]) -> int:
        """Drop every entry for which ``predicate(key, value)`` holds; return the count."""
