"""
Seed Organization

Creates a training organization with its fee types and an organization
admin account. Run this once per new tenant.

Usage:
    cd apps/api
    python scripts/seed_organization.py --name "Kendeh VTC" --domain trainees.kendeh.edu \
        --admin-email admin@kendeh.edu --admin-password 'ChangeMe123'
"""

import argparse
import asyncio
import sys
from decimal import Decimal
from pathlib import Path

# Add the src directory to the path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from app.core.config import settings
from app.core.security import hash_password
from app.modules.fees.models import FeePurpose
from app.modules.organizations.models import FeeType, Organization
from app.modules.users.models import User, UserRole, UserRoleAssignment

DEFAULT_FEES = {
    FeePurpose.APPLICATION_FEE: ("Application fee", Decimal("50.00")),
    FeePurpose.REGISTRATION_FEE: ("Registration fee", Decimal("250.00")),
}


async def seed_organization(args: argparse.Namespace) -> None:
    """Create the organization, its fee types and its admin if they don't exist."""
    engine = create_async_engine(settings.database_url, echo=False)
    async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with async_session() as db:
        result = await db.execute(select(Organization).where(Organization.name == args.name))
        organization = result.scalar_one_or_none()

        if organization:
            print(f"Organization already exists: {organization.name} ({organization.id})")
        else:
            organization = Organization(
                name=args.name,
                email_domain=args.domain,
                trainee_id_prefix=args.prefix or settings.default_trainee_id_prefix,
                trainee_sequence=0,
                is_active=True,
            )
            db.add(organization)
            await db.flush()

            for purpose, (name, amount) in DEFAULT_FEES.items():
                db.add(
                    FeeType(
                        organization_id=organization.id,
                        name=name,
                        purpose=purpose,
                        amount=amount,
                        is_active=True,
                    )
                )
            print(f"Organization created: {organization.name} ({organization.id})")

        result = await db.execute(select(User).where(User.email == args.admin_email.lower()))
        admin = result.scalar_one_or_none()

        if admin:
            print(f"Admin already exists: {admin.email}")
        else:
            admin = User(
                email=args.admin_email.lower(),
                password_hash=hash_password(args.admin_password),
                first_name="Organization",
                last_name="Admin",
                is_active=True,
                is_verified=True,
                must_change_password=True,
            )
            db.add(admin)
            await db.flush()
            db.add(
                UserRoleAssignment(
                    user_id=admin.id,
                    organization_id=organization.id,
                    role=UserRole.ORGANIZATION_ADMIN,
                )
            )
            print(f"Admin created: {admin.email} ({admin.id})")

        await db.commit()

    await engine.dispose()


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed a training organization")
    parser.add_argument("--name", required=True)
    parser.add_argument("--domain", required=True, help="Domain of trainee system emails")
    parser.add_argument("--prefix", default=None, help="Trainee number prefix")
    parser.add_argument("--admin-email", required=True)
    parser.add_argument("--admin-password", required=True)
    return parser.parse_args()


if __name__ == "__main__":
    asyncio.run(seed_organization(parse_args()))
