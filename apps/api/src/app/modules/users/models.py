"""
User Models

The identity store: login identities and their per-organization roles.
"""

import uuid
from enum import Enum

from sqlalchemy import Boolean, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.modules.shared import BaseModel, pg_enum


class UserRole(str, Enum):
    """Roles a user can hold within an organization."""

    SUPER_ADMIN = "super_admin"
    ORGANIZATION_ADMIN = "organization_admin"
    ADMIN = "admin"
    REGISTRATION_OFFICER = "registration_officer"
    DEBTOR_OFFICER = "debtor_officer"
    HOSTEL_COORDINATOR = "hostel_coordinator"
    TRAINEE = "trainee"


class User(BaseModel):
    """
    Login identity.

    ``email`` is unique at the database level; concurrent attempts to
    create the same identity resolve to a single row.
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Set for provisioned trainees until they choose their own password
    must_change_password: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"

    @property
    def full_name(self) -> str:
        """Return user's full name."""
        return f"{self.first_name} {self.last_name}"


class UserRoleAssignment(BaseModel):
    """A role held by a user within one organization."""

    __tablename__ = "user_roles"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    organization_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    role: Mapped[UserRole] = mapped_column(pg_enum(UserRole, "user_role"), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "organization_id", "role", name="uq_user_roles_user_org_role"),
    )

    def __repr__(self) -> str:
        return f"<UserRoleAssignment(user_id={self.user_id}, role={self.role.value})>"
