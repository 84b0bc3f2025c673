"""
Caller identity.

Tokens are issued by the platform's auth service; this module only decodes
them into an Identity and exposes it as a FastAPI dependency. The engine
trusts the identity and applies role/building scoping through
gatehouse.core.permissions.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from gatehouse.core.config import get_settings
from gatehouse.core.logging import bind_caller, get_logger

logger = get_logger(__name__)
settings = get_settings()

bearer_scheme = HTTPBearer(auto_error=False)


class Role(str, Enum):
    RESIDENT = "resident"
    BUILDING_ADMIN = "building_admin"
    SUPER_ADMIN = "super_admin"
    WATCHMAN = "watchman"


@dataclass(frozen=True)
class Identity:
    id: int
    role: Role
    building_id: Optional[int] = None
    apartment_id: Optional[int] = None

    @property
    def is_admin(self) -> bool:
        return self.role in (Role.BUILDING_ADMIN, Role.SUPER_ADMIN)


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


def identity_from_claims(claims: dict) -> Identity:
    """
    Build an Identity from token claims.
    Accepts both snake_case and camelCase affiliation claims.
    Raises ValueError for a missing id or a role outside the closed set.
    """
    raw_id = claims.get("sub", claims.get("id"))
    if raw_id is None:
        raise ValueError("token has no subject")
    role = Role(claims.get("role"))
    return Identity(
        id=int(raw_id),
        role=role,
        building_id=_optional_int(claims.get("building_id", claims.get("buildingId"))),
        apartment_id=_optional_int(claims.get("apartment_id", claims.get("apartmentId"))),
    )


def create_access_token(identity: Identity, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    claims = {
        "sub": str(identity.id),
        "role": identity.role.value,
        "building_id": identity.building_id,
        "apartment_id": identity.apartment_id,
        "exp": expire,
    }
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Identity:
    claims = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    return identity_from_claims(claims)


async def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Identity:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        identity = decode_access_token(credentials.credentials)
    except (jwt.PyJWTError, ValueError) as e:
        logger.warning("token_rejected", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    bind_caller(identity.id, identity.role.value, identity.building_id)
    return identity
