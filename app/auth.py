"""
Bearer token authentication.

Tokens are issued by the identity service and signed with the shared
SECRET_KEY. Only verification happens here: `sub` is the user id and `roles`
lists any of patient, doctor, admin.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from jose import jwt as jose_jwt

from .config import JWT_ALGORITHM, SECRET_KEY
from .shared.errors import ForbiddenError, UnauthorizedError

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

T = TypeVar("T")


class Role(str, enum.Enum):
    PATIENT = "patient"
    DOCTOR = "doctor"
    ADMIN = "admin"


# Highest privilege first, used when one handler must be picked for a principal
ROLE_PRIORITY = (Role.ADMIN, Role.DOCTOR, Role.PATIENT)


@dataclass(frozen=True)
class Principal:
    id: int
    roles: frozenset

    def has_role(self, role: Role) -> bool:
        return role in self.roles


def create_access_token(user_id: int, roles: list[str], secret_key: str = SECRET_KEY) -> str:
    """Mint a token in the identity service's format (local tooling and tests)"""
    return jose_jwt.encode({"sub": str(user_id), "roles": roles}, secret_key, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> Principal:
    try:
        payload = jose_jwt.decode(token, SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError as e:
        logger.warning(f"⚠️ JWT verification failed: {e}")
        raise UnauthorizedError("Invalid or expired token")

    try:
        user_id = int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        logger.warning(f"⚠️ Token missing user id claim. Available claims: {list(payload.keys())}")
        raise UnauthorizedError("Invalid token claims")

    raw_roles = payload.get("roles") or []
    if isinstance(raw_roles, str):
        raw_roles = [raw_roles]
    known = {r.value for r in Role}
    roles = frozenset(Role(r) for r in raw_roles if r in known)
    return Principal(id=user_id, roles=roles)


async def get_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Principal:
    """Resolve the authenticated principal from the Authorization header"""
    if not credentials:
        raise UnauthorizedError(
            "Not authenticated. Please provide a valid Bearer token in the Authorization header."
        )
    return decode_access_token(credentials.credentials)


def require_roles(*roles: Role) -> Callable:
    """Dependency factory: the principal must hold at least one of `roles`"""

    async def dependency(principal: Principal = Depends(get_principal)) -> Principal:
        if not any(principal.has_role(r) for r in roles):
            logger.warning(f"⚠️ User {principal.id} lacks roles {[r.value for r in roles]}")
            raise ForbiddenError("Insufficient role for this operation")
        return principal

    return dependency


def dispatch_by_role(principal: Principal, handlers: dict[Role, T]) -> tuple[Role, T]:
    """Pick the handler for the principal's highest-priority role that has one"""
    for role in ROLE_PRIORITY:
        if role in handlers and principal.has_role(role):
            return role, handlers[role]
    raise ForbiddenError("No handler for the caller's roles")
