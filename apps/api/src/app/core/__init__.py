"""
Core module - Configuration, database, security, errors, and utilities.
"""

from app.core.config import get_settings, settings
from app.core.database import Base, close_db, get_db, init_db
from app.core.errors import (
    InvalidStateTransitionError,
    NotFoundError,
    PermissionDeniedError,
    RetryableError,
    ServiceError,
    ValidationError,
)
from app.core.redis import close_redis, get_redis, init_redis
from app.core.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    verify_password,
)

__all__ = [
    # Config
    "settings",
    "get_settings",
    # Database
    "Base",
    "get_db",
    "init_db",
    "close_db",
    # Errors
    "ServiceError",
    "ValidationError",
    "NotFoundError",
    "PermissionDeniedError",
    "InvalidStateTransitionError",
    "RetryableError",
    # Redis
    "get_redis",
    "init_redis",
    "close_redis",
    # Security
    "hash_password",
    "verify_password",
    "create_access_token",
    "create_refresh_token",
    "decode_token",
]
