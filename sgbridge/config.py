"""
Application configuration loaded from environment variables.
Uses pydantic-settings so every value can be overridden via a .env file.
"""

from enum import Enum

from pydantic_settings import BaseSettings


class IdentityApiVersion(str, Enum):
    """Keystone flavours the OpenStack connection can authenticate against."""

    V2 = "v2"
    V3 = "v3"


class Settings(BaseSettings):
    # ── JWT ──────────────────────────────────────────────────────────────────
    # Secret used to sign/verify JWT tokens.  Change this in production!
    jwt_secret_key: str = "changeme-super-secret-key"
    jwt_algorithm: str = "HS256"
    # Token lifetime in minutes
    jwt_expire_minutes: int = 60

    # ── API users ─────────────────────────────────────────────────────────────
    # Comma-separated "username:password[:scope+scope]" entries.  Scopes are
    # "read" and "write"; both are granted when the third field is omitted.
    demo_users: str = "admin:secret:read+write,viewer:viewer:read"

    # ── OpenStack ─────────────────────────────────────────────────────────────
    os_auth_url: str = "https://identity.uk-1.cloud.global.fujitsu.com/v3"
    os_username: str = ""
    os_password: str = ""
    os_project_name: str = ""
    # Only used by Keystone v3
    os_user_domain_name: str = "Default"
    os_project_domain_name: str = "Default"
    identity_api_version: IdentityApiVersion = IdentityApiVersion.V3

    # ── Regions ───────────────────────────────────────────────────────────────
    regions: str = "uk-1"
    # "region=ISO3166" pairs, e.g. "uk-1=GB-SLG,fi-1=FI-18"
    region_iso3166_codes: str = "uk-1=GB-SLG"

    # ── Security group conventions ────────────────────────────────────────────
    group_name_prefix: str = "jclouds"
    ownership_tag_prefix: str = "jclouds-sg"

    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    # ── Helpers ───────────────────────────────────────────────────────────────
    def get_demo_users(self) -> dict[str, tuple[str, frozenset[str]]]:
        """Return the user map {username: (password, scopes)}."""
        users: dict[str, tuple[str, frozenset[str]]] = {}
        for entry in self.demo_users.split(","):
            entry = entry.strip()
            if ":" not in entry:
                continue
            username, rest = entry.split(":", 1)
            # bcrypt hashes never contain ':' so the last field is the scope list
            password, _, scopes = rest.partition(":")
            granted = frozenset(s.strip() for s in scopes.split("+") if s.strip())
            users[username.strip()] = (password.strip(), granted or frozenset({"read", "write"}))
        return users

    def get_regions(self) -> list[str]:
        """Return the configured region ids in declaration order."""
        return [r.strip() for r in self.regions.split(",") if r.strip()]

    def get_iso3166_codes(self) -> dict[str, str]:
        """Return {region: ISO 3166 code} for the regions that declare one."""
        codes: dict[str, str] = {}
        for pair in self.region_iso3166_codes.split(","):
            pair = pair.strip()
            if "=" in pair:
                region, code = pair.split("=", 1)
                codes[region.strip()] = code.strip()
        return codes


settings = Settings()
