"""
Login for API clients.

POST /auth/token takes form-encoded ``username`` and ``password`` fields and
answers with a signed JWT whose ``scope`` lists what the caller may do with
security groups (``read``, ``write``).
"""

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel

from sgbridge.config import settings
from sgbridge.services import auth

router = APIRouter(prefix="/auth", tags=["Authentication"])


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    scope: str


@router.post(
    "/token",
    response_model=TokenResponse,
    summary="Log in and get a scoped token",
    description=(
        "Returns a Bearer token for the given credentials. Read-only users get the "
        "`read` scope; operators that create or delete groups also get `write`."
    ),
)
def login(form_data: OAuth2PasswordRequestForm = Depends()) -> TokenResponse:
    scopes = auth.authenticate_user(form_data.username, form_data.password)
    if scopes is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return TokenResponse(
        access_token=auth.create_access_token(subject=form_data.username, scopes=scopes),
        expires_in=settings.jwt_expire_minutes * 60,
        scope=" ".join(sorted(scopes)),
    )
