"""
Shared fixtures for the admissions pipeline tests.
"""

from datetime import UTC, datetime
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import UUID, uuid4

import pytest

from app.core.auth import Principal
from app.modules.admissions.models import (
    EnrollmentStatus,
    QualificationStatus,
    RegistrationStatus,
    Trainee,
    TraineeApplication,
)
from app.modules.fees.models import FeePurpose, LedgerEntry, LedgerStatus
from app.modules.organizations.models import FeeType, Organization
from app.modules.users.models import UserRole

ORG_ID = UUID("10000000-0000-0000-0000-000000000001")
OTHER_ORG_ID = UUID("10000000-0000-0000-0000-000000000002")


@pytest.fixture(autouse=True)
def deliver_events_mock():
    """Keep notification delivery away from the database in every test."""
    with patch(
        "app.modules.notifications.outbox.deliver_events",
        new=AsyncMock(return_value=0),
    ) as mock:
        yield mock


@pytest.fixture
def mock_db():
    """Create a mock database session."""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.flush = AsyncMock()
    db.refresh = AsyncMock()
    db.get = AsyncMock()
    db.execute = AsyncMock()
    db.add = MagicMock()

    savepoint = MagicMock()
    savepoint.__aenter__ = AsyncMock(return_value=None)
    savepoint.__aexit__ = AsyncMock(return_value=False)
    db.begin_nested = MagicMock(return_value=savepoint)
    return db


def make_principal(role: UserRole, organization_id: UUID | None = ORG_ID) -> Principal:
    return Principal(
        id=uuid4(),
        email=f"{role.value}@example.edu",
        role=role.value,
        organization_id=organization_id,
    )


@pytest.fixture
def org_id():
    return ORG_ID


@pytest.fixture
def registrar():
    return make_principal(UserRole.REGISTRATION_OFFICER)


@pytest.fixture
def debtor_officer():
    return make_principal(UserRole.DEBTOR_OFFICER)


@pytest.fixture
def other_org_registrar():
    return make_principal(UserRole.REGISTRATION_OFFICER, OTHER_ORG_ID)


def make_organization(**overrides) -> Organization:
    fields = {
        "id": ORG_ID,
        "name": "Kendeh Vocational Training Center",
        "email_domain": "trainees.kendeh.edu",
        "trainee_id_prefix": "KVT",
        "trainee_sequence": 0,
        "is_active": True,
    }
    fields.update(overrides)
    return Organization(**fields)


def make_fee_type(purpose: FeePurpose, amount: str = "50.00", **overrides) -> FeeType:
    fields = {
        "id": uuid4(),
        "organization_id": ORG_ID,
        "name": purpose.value.replace("_", " ").title(),
        "purpose": purpose,
        "amount": Decimal(amount),
        "is_active": True,
    }
    fields.update(overrides)
    return FeeType(**fields)


def make_application(**overrides) -> TraineeApplication:
    fields = {
        "id": uuid4(),
        "organization_id": ORG_ID,
        "national_id": "SL-1990-0042",
        "first_name": "Aminata",
        "last_name": "Kamara",
        "email": "aminata@example.com",
        "needs_hostel_accommodation": False,
        "qualification_status": QualificationStatus.PENDING,
        "registration_status": RegistrationStatus.APPLIED,
        "account_provisioning_status": None,
        "trainee_number": None,
        "system_email": None,
        "user_id": None,
        "submitted_at": datetime.now(UTC),
    }
    fields.update(overrides)
    return TraineeApplication(**fields)


def make_trainee(application: TraineeApplication, **overrides) -> Trainee:
    fields = {
        "id": uuid4(),
        "organization_id": application.organization_id,
        "application_id": application.id,
        "user_id": application.user_id,
        "trainee_number": application.trainee_number,
        "qualification_id": uuid4(),
        "academic_year": "2026",
        "enrollment_status": EnrollmentStatus.FEE_PENDING,
        "enrollment_finalized_at": None,
    }
    fields.update(overrides)
    return Trainee(**fields)


def make_entry(
    purpose: FeePurpose = FeePurpose.APPLICATION_FEE,
    amount: str = "50.00",
    **overrides,
) -> LedgerEntry:
    required = Decimal(amount)
    fields = {
        "id": uuid4(),
        "organization_id": ORG_ID,
        "purpose": purpose,
        "amount_required": required,
        "amount_paid": Decimal("0"),
        "balance": required,
        "status": LedgerStatus.PENDING,
    }
    fields.update(overrides)
    return LedgerEntry(**fields)


# ============================================
# Factory fixtures
# ============================================


@pytest.fixture
def organization_factory():
    return make_organization


@pytest.fixture
def fee_type_factory():
    return make_fee_type


@pytest.fixture
def application_factory():
    return make_application


@pytest.fixture
def trainee_factory():
    return make_trainee


@pytest.fixture
def entry_factory():
    return make_entry
