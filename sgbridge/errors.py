"""
Exception hierarchy shared by the store, the cleanup logic and the adapters.

    SecurityGroupError
    ├── MalformedIdentifier   bad "<region>/<localId>" string
    ├── UnsupportedRegion     region absent from the configured set
    ├── NotFound              vendor has no such local id
    ├── VendorConflict        vendor reports a pre-existing resource
    └── TransportError        any other vendor / network failure

Vendor SDK exceptions are translated into these at the adapter boundary, so
callers can branch on type instead of matching messages.
"""

from typing import Optional


class SecurityGroupError(Exception):
    """Base class for every error raised by sgbridge."""

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def __str__(self) -> str:
        if self.cause:
            return f"{self.message}: {self.cause}"
        return self.message


class MalformedIdentifier(SecurityGroupError, ValueError):
    def __init__(self, value: str, reason: str = "expected '<region>/<id>'"):
        super().__init__(f"Malformed region-scoped id '{value}': {reason}")
        self.value = value


class UnsupportedRegion(SecurityGroupError):
    def __init__(self, region: Optional[str]):
        super().__init__(f"Region '{region}' is not configured")
        self.region = region


class NotFound(SecurityGroupError):
    def __init__(self, kind: str, region: str, local_id: str, cause: Optional[Exception] = None):
        super().__init__(f"{kind} '{local_id}' not found in region '{region}'", cause)
        self.kind = kind
        self.region = region
        self.local_id = local_id


class VendorConflict(SecurityGroupError):
    """Raised when the vendor refuses a create because the resource exists."""

    def __init__(self, region: str, name: str, cause: Optional[Exception] = None):
        super().__init__(f"Security group '{name}' already exists in region '{region}'", cause)
        self.region = region
        self.name = name


class TransportError(SecurityGroupError):
    """Network or API failure; the vendor's message is kept on ``cause``."""
