"""
Entry point for the Security Group Bridge API.

Run locally:
    uvicorn sgbridge.main:app --reload

Interactive docs available at:
    http://localhost:8000/docs  (Swagger UI)
    http://localhost:8000/redoc (ReDoc)
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from sgbridge.apis.auth import router as auth_router
from sgbridge.apis.nodes import router as nodes_router
from sgbridge.apis.security_groups import router as security_groups_router
from sgbridge.config import settings
from sgbridge.errors import (
    MalformedIdentifier,
    NotFound,
    SecurityGroupError,
    TransportError,
    UnsupportedRegion,
    VendorConflict,
)

# ── Logging ───────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
)
logger = logging.getLogger(__name__)

# ── FastAPI app ───────────────────────────────────────────────────────────────
app = FastAPI(
    title="Security Group Bridge API",
    description=(
        "Region-scoped security group lifecycle on an OpenStack network API. "
        "All endpoints (except `/auth/token` and `/health`) require a valid JWT Bearer token."
    ),
    version="1.0.0",
    contact={"name": "Platform Engineering"},
    license_info={"name": "MIT"},
)

# ── Routers ───────────────────────────────────────────────────────────────────
app.include_router(auth_router)
app.include_router(security_groups_router)
app.include_router(nodes_router)


# ── Error handlers ────────────────────────────────────────────────────────────
_STATUS_BY_ERROR: list[tuple[type[SecurityGroupError], int]] = [
    (MalformedIdentifier, status.HTTP_400_BAD_REQUEST),
    (UnsupportedRegion, status.HTTP_404_NOT_FOUND),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (VendorConflict, status.HTTP_409_CONFLICT),
    (TransportError, status.HTTP_502_BAD_GATEWAY),
]


@app.exception_handler(SecurityGroupError)
async def security_group_error_handler(request: Request, exc: SecurityGroupError) -> JSONResponse:
    code = next(
        (code for kind, code in _STATUS_BY_ERROR if isinstance(exc, kind)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    if code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=code, content={"detail": str(exc)})


# ── Health check ──────────────────────────────────────────────────────────────
@app.get("/health", tags=["Health"], summary="Health check")
def health() -> dict:
    """Returns 200 OK when the service is running."""
    return {"status": "ok"}
