"""
Authentication service: credential validation + scoped JWT creation/verification.

Flow
────
1. The orchestration layer calls POST /auth/token with username + password.
2. Credentials are checked against the configured user store
   (``settings.demo_users``); each user carries a set of scopes.
3. On success a signed JWT is returned whose ``scope`` claim lists them.
4. Read routes need the ``read`` scope; routes that change vendor state
   (create, delete, authorize, revoke, cleanup) need ``write``.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from sgbridge.config import settings

READ_SCOPE = "read"
WRITE_SCOPE = "write"

# bcrypt context for hashed passwords in the user store
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


@dataclass(frozen=True)
class Principal:
    username: str
    scopes: frozenset[str]

    def has_scope(self, scope: str) -> bool:
        return scope in self.scopes


# ── Token helpers ─────────────────────────────────────────────────────────────

def create_access_token(
    subject: str,
    scopes: frozenset[str],
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a signed JWT for *subject* carrying *scopes* space-separated."""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.jwt_expire_minutes)
    )
    payload = {"sub": subject, "scope": " ".join(sorted(scopes)), "exp": expire}
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Optional[Principal]:
    """Return the token's principal, or None if it is invalid or expired."""
    try:
        payload = jwt.decode(
            token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm]
        )
    except JWTError:
        return None
    subject = payload.get("sub")
    if not subject:
        return None
    return Principal(username=subject, scopes=frozenset(payload.get("scope", "").split()))


# ── Credential validation ─────────────────────────────────────────────────────

def authenticate_user(username: str, password: str) -> Optional[frozenset[str]]:
    """
    Check *username* / *password* against the configured user store and
    return the user's scopes, or None when the credentials are wrong.
    """
    entry = settings.get_demo_users().get(username)
    if entry is None:
        return None
    stored_password, scopes = entry
    if stored_password.startswith("$2b$"):
        return scopes if pwd_context.verify(password, stored_password) else None
    return scopes if stored_password == password else None
