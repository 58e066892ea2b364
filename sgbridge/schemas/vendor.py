"""
Pydantic schemas for the Neutron-style vendor model.

These mirror the fields of the OpenStack networking API closely enough that
the adapter in ``sgbridge.cloud.neutron`` can build them straight from SDK
resources.  Ports and remotes are optional because vendor responses are
frequently partially populated.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Direction(str, Enum):
    INGRESS = "ingress"
    EGRESS = "egress"


class EtherType(str, Enum):
    IPV4 = "IPv4"
    IPV6 = "IPv6"


class VendorRule(BaseModel):
    id: str
    security_group_id: Optional[str] = None
    direction: Direction
    ethertype: EtherType = EtherType.IPV4
    protocol: Optional[str] = None
    port_range_min: Optional[int] = None
    port_range_max: Optional[int] = None
    remote_ip_prefix: Optional[str] = None
    remote_group_id: Optional[str] = None


class VendorSecurityGroup(BaseModel):
    id: str
    tenant_id: Optional[str] = None
    name: str
    description: Optional[str] = None
    rules: list[VendorRule] = Field(default_factory=list)


class VendorRuleSpec(BaseModel):
    """Payload of a vendor "create rule" call."""

    model_config = ConfigDict(frozen=True)

    security_group_id: str
    direction: Direction = Direction.INGRESS
    ethertype: EtherType = EtherType.IPV4
    protocol: Optional[str] = None
    port_range_min: Optional[int] = None
    port_range_max: Optional[int] = None
    remote_ip_prefix: Optional[str] = None
    remote_group_id: Optional[str] = None


class Instance(BaseModel):
    """The slice of a compute server the store needs."""

    id: str
    name: str = ""
    tags: frozenset[str] = frozenset()
