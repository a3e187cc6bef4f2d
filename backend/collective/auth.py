"""Principal resolution: who is asking.

The auth provider issues HS256 JWTs: ``sub`` is the profile id and
``role == "service_role"`` marks the elevated backend key. No token means
an anonymous principal. The token's role claim never grants ``admin``;
admin status is always looked up in ``profiles`` (see access_service).
"""
import enum
import logging
from dataclasses import dataclass
from typing import Annotated, Optional

import jwt
from fastapi import Header, HTTPException, status
from jwt.exceptions import InvalidTokenError

from collective.config import settings

logger = logging.getLogger(__name__)

SERVICE_ROLE_CLAIM = "service_role"


class PrincipalKind(str, enum.Enum):
    anonymous = "anonymous"
    authenticated = "authenticated"
    service = "service"


@dataclass(frozen=True)
class Principal:
    kind: PrincipalKind
    uid: Optional[str] = None

    @classmethod
    def anonymous(cls) -> "Principal":
        return cls(PrincipalKind.anonymous)

    @classmethod
    def authenticated(cls, uid: str) -> "Principal":
        return cls(PrincipalKind.authenticated, uid)

    @classmethod
    def service(cls) -> "Principal":
        return cls(PrincipalKind.service)

    @property
    def is_anonymous(self) -> bool:
        return self.kind == PrincipalKind.anonymous

    @property
    def is_service(self) -> bool:
        return self.kind == PrincipalKind.service


def create_access_token(uid: Optional[str] = None, service: bool = False) -> str:
    """Sign a token the way the auth provider does (tests and scripts)."""
    claims = {"role": SERVICE_ROLE_CLAIM} if service else {"sub": uid, "role": "authenticated"}
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def principal_from_token(token: str) -> Principal:
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    if payload.get("role") == SERVICE_ROLE_CLAIM:
        return Principal.service()
    uid = payload.get("sub")
    if not uid:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Token has no subject")
    return Principal.authenticated(str(uid))


def get_principal(authorization: Annotated[Optional[str], Header()] = None) -> Principal:
    """FastAPI dependency: anonymous unless a valid bearer token is sent."""
    if not authorization:
        return Principal.anonymous()
    if not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Malformed authorization header")
    return principal_from_token(authorization.split(" ", 1)[1])


def require_authenticated(principal: Principal) -> Principal:
    if principal.is_anonymous:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Sign in required")
    return principal
