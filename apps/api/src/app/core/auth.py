"""
Authentication and Authorization Module

Provides the caller context (Principal) passed into every pipeline
operation, the FastAPI dependency that builds it from a JWT, and the
role/tenant check used inside services.

Pipeline services never look up the current user themselves; the router
resolves the Principal and hands it over explicitly, so services can be
exercised in tests without an auth stack.

SECURITY NOTE:
- Development mode auth bypass is ONLY enabled when PYTHON_ENV=development
- Production environments MUST set PYTHON_ENV=production to disable test tokens
"""

import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.config import settings
from app.core.errors import PermissionDeniedError
from app.core.security import decode_token

logger = logging.getLogger(__name__)

SUPER_ADMIN_ROLE = "super_admin"

# Security scheme for OpenAPI documentation
security = HTTPBearer(
    auto_error=True,
    description="JWT Bearer token for authentication",
)


@dataclass(frozen=True)
class Principal:
    """
    The authenticated caller of a pipeline operation.

    Attributes:
        id: User's unique identifier
        email: User's email address
        role: Role the caller acts under
        organization_id: Tenant the caller belongs to (None for platform admins)
        name: Display name (optional)
    """

    id: UUID
    email: str
    role: str
    organization_id: UUID | None = None
    name: str | None = None

    @property
    def is_super_admin(self) -> bool:
        return self.role == SUPER_ADMIN_ROLE

    def __str__(self) -> str:
        return f"Principal(id={self.id}, email={self.email}, role={self.role})"


# Identity used by scheduled jobs and automatic follow-up actions
SYSTEM_PRINCIPAL = Principal(
    id=UUID("00000000-0000-0000-0000-000000000000"),
    email="system@admissions.internal",
    role=SUPER_ADMIN_ROLE,
    name="System",
)


def _role_value(role: str | Enum) -> str:
    return role.value if isinstance(role, Enum) else role


def authorize(
    principal: Principal,
    organization_id: UUID,
    allowed_roles: Iterable[str | Enum],
) -> None:
    """
    Check that the caller may act on a record of the given organization.

    Super admins may act on any organization. Everyone else needs one of
    ``allowed_roles`` and must belong to the record's organization.

    Raises:
        PermissionDeniedError: If the check fails
    """
    if principal.is_super_admin:
        return

    allowed = {_role_value(role) for role in allowed_roles}
    if principal.role not in allowed:
        logger.warning(
            f"Access denied: {principal.id} has role '{principal.role}', "
            f"requires one of {sorted(allowed)}"
        )
        raise PermissionDeniedError(
            f"Role '{principal.role}' is not allowed to perform this action."
        )

    if principal.organization_id != organization_id:
        logger.warning(
            f"Access denied: {principal.id} belongs to organization "
            f"{principal.organization_id}, record belongs to {organization_id}"
        )
        raise PermissionDeniedError("This record belongs to another organization.")


def _is_dev_mode_safe() -> bool:
    """
    Development auth bypass is enabled only when every environment signal
    agrees that this is a development deployment.
    """
    env_var = os.getenv("PYTHON_ENV", "").lower()

    is_safe = (
        settings.is_development
        and not settings.is_production
        and env_var not in ("production", "staging")
    )

    if is_safe:
        logger.warning(
            "SECURITY: Development auth mode is ENABLED. This MUST NOT be used in production!"
        )

    return is_safe


_DEVELOPMENT_MODE = _is_dev_mode_safe()

_DEV_PRINCIPAL = Principal(
    id=UUID("00000000-0000-0000-0000-000000000001"),
    email="admin@admissions.dev",
    role=SUPER_ADMIN_ROLE,
    name="Development Admin",
)


def _unauthorized(error: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": error, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _validate_jwt_token(token: str) -> Principal:
    """
    Validate a bearer token and build the Principal from its claims.

    Raises:
        HTTPException 401: If the token is invalid, expired, or malformed
    """
    if _DEVELOPMENT_MODE and token in ("dev-token", "test-token"):
        logger.debug("Development mode: Using test token")
        return _DEV_PRINCIPAL

    payload = decode_token(token)
    if payload is None:
        logger.warning("Invalid or expired JWT token")
        raise _unauthorized("INVALID_TOKEN", "Invalid or expired authentication token.")

    if payload.get("type", "access") != "access":
        logger.warning(f"Invalid token type: {payload.get('type')}")
        raise _unauthorized("INVALID_TOKEN_TYPE", "This endpoint requires an access token.")

    try:
        subject = payload.get("sub")
        if not subject:
            raise ValueError("Missing 'sub' claim in token")

        organization_id = payload.get("organization_id")
        return Principal(
            id=UUID(subject),
            email=payload.get("email", ""),
            role=payload.get("role", ""),
            organization_id=UUID(organization_id) if organization_id else None,
            name=payload.get("name"),
        )
    except (ValueError, KeyError) as e:
        logger.warning(f"Invalid token claims: {e}")
        raise _unauthorized(
            "INVALID_TOKEN_CLAIMS", "Token contains invalid or missing claims."
        ) from e


async def get_current_principal(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Principal:
    """
    FastAPI dependency returning the authenticated caller.

    Role checks happen inside the services via ``authorize``.
    """
    principal = await _validate_jwt_token(credentials.credentials)
    logger.debug(f"Authenticated principal: {principal.id} ({principal.role})")
    return principal


__all__ = [
    "Principal",
    "SYSTEM_PRINCIPAL",
    "SUPER_ADMIN_ROLE",
    "authorize",
    "get_current_principal",
]
