"""
Bearer token authentication for the order sync API.

Sessions, logins and token issuance live in the identity service; this
module only verifies the JWT it hands out and exposes the caller's user id
and business (tenant) memberships to the routes.
"""

from datetime import datetime, timedelta
from typing import Optional, List
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from pydantic import BaseModel

from .config import get_settings

logger = logging.getLogger(__name__)

ACCESS_TOKEN_EXPIRE_MINUTES = 30

security = HTTPBearer(auto_error=False)


class TokenData(BaseModel):
    """Token payload data."""

    user_id: Optional[int] = None
    username: Optional[str] = None
    roles: List[str] = []
    tenant_ids: List[int] = []


class User(BaseModel):
    """Authenticated caller."""

    id: int
    username: str
    roles: List[str]
    tenant_ids: List[int]
    is_active: bool = True

    @property
    def business_id(self) -> Optional[int]:
        """Active business; the first tenant in the token."""
        return self.tenant_ids[0] if self.tenant_ids else None


def create_access_token(
    data: dict, expires_delta: Optional[timedelta] = None
) -> str:
    """Create a JWT access token. Used by tooling and tests."""
    settings = get_settings()
    to_encode = data.copy()
    expire = datetime.utcnow() + (
        expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire, "type": "access"})
    if settings.jwt_issuer:
        to_encode["iss"] = settings.jwt_issuer
    if settings.jwt_audience:
        to_encode["aud"] = settings.jwt_audience

    return jwt.encode(
        to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm
    )


def verify_token(token: str) -> Optional[TokenData]:
    """
    Verify and decode a JWT access token.

    Returns:
        TokenData if valid, None otherwise
    """
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            options={"verify_aud": settings.jwt_audience is not None},
        )
    except JWTError as e:
        logger.warning(f"Rejected access token: {e}")
        return None

    if payload.get("type", "access") != "access":
        return None

    user_id = payload.get("sub") or payload.get("user_id")
    try:
        user_id = int(user_id) if user_id is not None else None
    except (TypeError, ValueError):
        return None

    return TokenData(
        user_id=user_id,
        username=payload.get("username"),
        roles=payload.get("roles", []),
        tenant_ids=payload.get("tenant_ids", []),
    )


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> User:
    """Resolve the current authenticated user from the bearer token."""
    if not credentials:
        raise _credentials_exception()

    token_data = verify_token(credentials.credentials)
    if token_data is None or token_data.user_id is None:
        raise _credentials_exception()

    return User(
        id=token_data.user_id,
        username=token_data.username or f"user-{token_data.user_id}",
        roles=token_data.roles,
        tenant_ids=token_data.tenant_ids,
    )


async def get_current_business_id(
    current_user: User = Depends(get_current_user),
) -> int:
    """Business the caller is acting for; 403 when the token carries none."""
    if current_user.business_id is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No business associated with this account",
        )
    return current_user.business_id
