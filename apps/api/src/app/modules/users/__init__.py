"""
Users module - identity store and role assignments.
"""

from app.modules.users.models import User, UserRole, UserRoleAssignment
from app.modules.users.repository import IdentityConflictError, UserRepository

__all__ = ["User", "UserRole", "UserRoleAssignment", "UserRepository", "IdentityConflictError"]
