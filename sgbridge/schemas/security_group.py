"""
Pydantic schemas for the generic (compute-facing) security group model and
for the HTTP endpoints built on top of it.

Every domain model is frozen so instances hash by value: permissions live in
sets and ``RegionAndNamePortsKey`` is used as a cache key.
"""

import ipaddress
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class IpProtocol(str, Enum):
    TCP = "tcp"
    UDP = "udp"
    ICMP = "icmp"
    ALL = "all"


# ── Domain models ─────────────────────────────────────────────────────────────

class Location(BaseModel):
    """A region the vendor network API is deployed in."""

    model_config = ConfigDict(frozen=True)

    id: str
    scope: str = "region"
    description: str = ""
    iso3166_codes: frozenset[str] = frozenset()


class IpPermission(BaseModel):
    """
    One ingress permission.  The source is either an address range
    (``cidr_block``) or a peer group (``group_id``, region-scoped), never both.
    """

    model_config = ConfigDict(frozen=True)

    protocol: IpProtocol = IpProtocol.TCP
    from_port: int
    to_port: int
    cidr_block: Optional[str] = None
    group_id: Optional[str] = None

    @field_validator("cidr_block")
    @classmethod
    def validate_cidr(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        try:
            ipaddress.ip_network(v, strict=False)
        except ValueError:
            raise ValueError(f"'{v}' is not a valid CIDR block.")
        return v

    @model_validator(mode="after")
    def check_source_and_ports(self) -> "IpPermission":
        if (self.cidr_block is None) == (self.group_id is None):
            raise ValueError("exactly one of cidr_block or group_id must be set")
        if self.protocol in (IpProtocol.TCP, IpProtocol.UDP) and self.from_port > self.to_port:
            raise ValueError(f"from_port {self.from_port} is greater than to_port {self.to_port}")
        return self


class SecurityGroup(BaseModel):
    """
    Generic security group.  ``id`` is always region-qualified
    ("<region>/<provider_id>"); ``provider_id`` is the vendor's raw id.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    provider_id: str
    owner_id: Optional[str] = None
    name: str
    location: Location
    permissions: frozenset[IpPermission] = frozenset()


class RegionAndNamePortsKey(BaseModel):
    """Cache key for create-or-reuse; compared structurally."""

    model_config = ConfigDict(frozen=True)

    region: str
    name: str
    ports: frozenset[int] = frozenset()


class Capabilities(BaseModel):
    """Static facts about the vendor rule model."""

    model_config = ConfigDict(frozen=True)

    tenant_id_group_name_pairs: bool
    tenant_id_group_id_pairs: bool
    group_ids: bool
    port_ranges_for_groups: bool
    exclusion_cidr_blocks: bool


# ── Request models ────────────────────────────────────────────────────────────

class CreateSecurityGroupRequest(BaseModel):
    """Request body for POST /security-groups."""

    name: str = Field(..., min_length=1, examples=["web"])
    region: str = Field(..., min_length=1, examples=["uk-1"])


class EnsureSecurityGroupRequest(BaseModel):
    """Request body for POST /security-groups/ensure (create-or-reuse)."""

    name: str = Field(..., min_length=1, examples=["web"])
    region: str = Field(..., min_length=1, examples=["uk-1"])
    ports: list[int] = Field(
        default_factory=list,
        examples=[[80, 443]],
        description="TCP ports opened to 0.0.0.0/0 and to the group itself.",
    )

    @field_validator("ports")
    @classmethod
    def validate_ports(cls, v: list[int]) -> list[int]:
        for port in v:
            if not 0 < port < 65536:
                raise ValueError(f"{port} is not a valid TCP port.")
        return v


class PermissionsRequest(BaseModel):
    """Request body for adding or revoking permissions on a group."""

    protocol: IpProtocol = IpProtocol.TCP
    from_port: int = Field(..., examples=[80])
    to_port: int = Field(..., examples=[80])
    cidr_blocks: list[str] = Field(default_factory=list, examples=[["10.0.0.0/8"]])
    group_ids: list[str] = Field(
        default_factory=list,
        examples=[["uk-1/4c1a5e0d"]],
        description="Region-scoped ids of peer groups.",
    )

    @model_validator(mode="after")
    def check_targets(self) -> "PermissionsRequest":
        if not self.cidr_blocks and not self.group_ids:
            raise ValueError("at least one of cidr_blocks or group_ids is required")
        return self


class CleanupNodeRequest(BaseModel):
    """Request body for POST /nodes/{region}/{local_id}/cleanup."""

    tags: list[str] = Field(default_factory=list, examples=[["jclouds-sg-uk-1/4c1a5e0d"]])


# ── Response models ───────────────────────────────────────────────────────────

class SecurityGroupListResponse(BaseModel):
    count: int
    security_groups: list[SecurityGroup]


class CleanupNodeResponse(BaseModel):
    removed: bool
