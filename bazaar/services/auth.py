"""Bearer token verification for identity provider issued JWTs.

Users live in the external identity provider; this service only verifies the
token signature and reads the caller's id, role and merchant from its claims.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Annotated, Any

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel

from bazaar.config import settings

# Security event logger
security_logger = logging.getLogger("bazaar.security")

bearer_scheme = HTTPBearer(auto_error=False)

ACCESS_TOKEN_EXPIRE_MINUTES = 60


class Principal(BaseModel):
    """The authenticated caller."""

    user_id: str
    role: str | None = None
    merchant_id: str | None = None


def _claim(payload: dict[str, Any], *names: str) -> str | None:
    """First non-empty claim among ``names``, looked up top-level then in public_metadata."""
    metadata = payload.get("public_metadata") or payload.get("publicMetadata") or {}
    for source in (payload, metadata):
        if not isinstance(source, dict):
            continue
        for name in names:
            value = source.get(name)
            if value:
                return str(value)
    return None


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Sign a token with the configured key (used for service-to-service calls and tests)."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_principal(token: str) -> Principal | None:
    """Verify a token and build the caller from its claims. None if invalid."""
    audience = settings.jwt_audience
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
            audience=audience,
            issuer=settings.jwt_issuer,
            options={"verify_aud": audience is not None},
        )
    except JWTError as e:
        security_logger.warning("Rejected bearer token: %s", str(e))
        return None

    subject = payload.get("sub")
    if not subject:
        security_logger.warning("Rejected bearer token without subject")
        return None

    return Principal(
        user_id=str(subject),
        role=_claim(payload, "role"),
        merchant_id=_claim(payload, "merchant_id", "merchantId"),
    )


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> Principal | None:
    if credentials is None:
        return None
    return decode_principal(credentials.credentials)


async def require_auth(
    principal: Annotated[Principal | None, Depends(get_current_principal)],
) -> Principal:
    """Require authentication - raises 401 if not authenticated."""
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal


# Type aliases for dependency injection
RequireAuth = Annotated[Principal, Depends(require_auth)]
