"""
User Repository

Database operations for identities and role assignments.
"""

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.users.models import User, UserRole, UserRoleAssignment

logger = logging.getLogger(__name__)


class IdentityConflictError(Exception):
    """An identity with this email was created concurrently."""

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"Identity already exists for {email}")


class UserRepository:
    """Repository for user database operations."""

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        email: str,
        password_hash: str,
        first_name: str,
        last_name: str,
        is_active: bool = True,
        is_verified: bool = False,
        must_change_password: bool = False,
    ) -> User:
        """
        Create a new user record.

        The insert runs inside a savepoint so a unique-email violation only
        discards this row, not the caller's whole transaction.

        Raises:
            IdentityConflictError: If a user with this email already exists
        """
        user = User(
            email=email.lower(),
            password_hash=password_hash,
            first_name=first_name,
            last_name=last_name,
            is_active=is_active,
            is_verified=is_verified,
            must_change_password=must_change_password,
        )

        try:
            async with db.begin_nested():
                db.add(user)
                await db.flush()
        except IntegrityError as e:
            logger.info(f"User create conflicted on existing email: {email}")
            raise IdentityConflictError(email) from e

        await db.refresh(user)
        logger.info(f"Created user: {user.id} - {user.email}")
        return user

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: UUID) -> User | None:
        return await db.get(User, user_id)

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> User | None:
        """Get a user by email address (case-insensitive)."""
        result = await db.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()

    @staticmethod
    async def reset_credentials(
        db: AsyncSession,
        user: User,
        *,
        password_hash: str,
        must_change_password: bool = True,
    ) -> User:
        """Replace a user's password hash and flag whether it must be changed."""
        user.password_hash = password_hash
        user.must_change_password = must_change_password
        await db.flush()
        logger.info(f"Reset credentials for user: {user.id}")
        return user

    @staticmethod
    async def assign_role(
        db: AsyncSession,
        *,
        user_id: UUID,
        organization_id: UUID | None,
        role: UserRole,
    ) -> UserRoleAssignment:
        """
        Grant a role within an organization.

        Idempotent: an existing assignment is returned unchanged.
        """
        result = await db.execute(
            select(UserRoleAssignment).where(
                UserRoleAssignment.user_id == user_id,
                UserRoleAssignment.organization_id == organization_id,
                UserRoleAssignment.role == role,
            )
        )
        existing = result.scalar_one_or_none()
        if existing is not None:
            return existing

        assignment = UserRoleAssignment(
            user_id=user_id,
            organization_id=organization_id,
            role=role,
        )
        db.add(assignment)
        await db.flush()
        logger.info(f"Assigned role {role.value} to user {user_id} in {organization_id}")
        return assignment

    @staticmethod
    async def get_roles(db: AsyncSession, user_id: UUID) -> list[UserRoleAssignment]:
        result = await db.execute(
            select(UserRoleAssignment)
            .where(UserRoleAssignment.user_id == user_id)
            .order_by(UserRoleAssignment.created_at)
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_user_ids_with_role(
        db: AsyncSession,
        organization_id: UUID,
        role: UserRole,
    ) -> list[UUID]:
        """Active users currently holding ``role`` in the organization."""
        result = await db.execute(
            select(UserRoleAssignment.user_id)
            .join(User, User.id == UserRoleAssignment.user_id)
            .where(
                UserRoleAssignment.organization_id == organization_id,
                UserRoleAssignment.role == role,
                User.is_active.is_(True),
            )
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_emails(db: AsyncSession, user_ids: list[UUID]) -> dict[UUID, str]:
        if not user_ids:
            return {}
        result = await db.execute(select(User.id, User.email).where(User.id.in_(user_ids)))
        return {row.id: row.email for row in result.all()}
