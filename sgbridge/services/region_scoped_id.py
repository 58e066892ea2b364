"""
Region-scoped identifiers: "<region>/<localId>".

This is the only identifier format that crosses the system boundary.  Vendor
APIs are region-local, so the region is stripped before every vendor call and
re-added when results are translated back.
"""

from typing import NamedTuple

from sgbridge.errors import MalformedIdentifier

SEPARATOR = "/"


class RegionAndId(NamedTuple):
    region: str
    local_id: str

    def encode(self) -> str:
        return encode(self.region, self.local_id)


def encode(region: str, local_id: str) -> str:
    """Return ``"<region>/<local_id>"``."""
    return f"{region}{SEPARATOR}{local_id}"


def decode(encoded: str) -> RegionAndId:
    """
    Split *encoded* on the first ``/``.

    Raises ``MalformedIdentifier`` when there is no separator or when either
    half is empty.
    """
    if encoded is None:
        raise MalformedIdentifier("None", "id is required")
    region, sep, local_id = encoded.partition(SEPARATOR)
    if not sep:
        raise MalformedIdentifier(encoded, "missing '/' separator")
    if not region:
        raise MalformedIdentifier(encoded, "empty region")
    if not local_id:
        raise MalformedIdentifier(encoded, "empty local id")
    return RegionAndId(region, local_id)
