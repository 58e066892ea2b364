"""
FastAPI dependencies that protect routes behind scoped JWT authentication.

Usage in a route:
    @router.get("/protected")
    def my_route(principal: Principal = Depends(require_scope(READ_SCOPE))):
        ...
"""

from typing import Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from sgbridge.services.auth import Principal, decode_access_token

# Tells FastAPI/Swagger where the token endpoint is, enabling the
# "Authorize" button in the interactive docs.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


def get_current_user(token: str = Depends(oauth2_scheme)) -> Principal:
    """
    Decode the Bearer token and return the authenticated principal.

    Raises HTTP 401 if the token is missing, expired, or tampered with.
    """
    principal = decode_access_token(token)
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal


def require_scope(scope: str) -> Callable[[Principal], Principal]:
    """Dependency factory: 403 unless the principal holds *scope*."""

    def check_scope(principal: Principal = Depends(get_current_user)) -> Principal:
        if not principal.has_scope(scope):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Scope '{scope}' required",
            )
        return principal

    return check_scope
