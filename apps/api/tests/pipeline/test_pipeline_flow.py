"""
End-to-end admission flows.

The real services run against an in-memory store standing in for the
repositories, so every status change goes through the same code paths as
production: screening, clearance, identifier minting, provisioning,
registration and enrollment.
"""

from datetime import UTC, datetime
from decimal import Decimal
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from app.core.errors import InvalidStateTransitionError
from app.modules.admissions import service as admissions_service
from app.modules.admissions.models import (
    AccountProvisioningStatus,
    EnrollmentStatus,
    QualificationStatus,
    RegistrationStatus,
    Trainee,
    TraineeApplication,
)
from app.modules.admissions.schemas import ApplicationCreate
from app.modules.fees import clearance
from app.modules.fees.models import FeePurpose, LedgerEntry, LedgerStatus
from app.modules.organizations.repository import FeeTypeRepository, OrganizationRepository
from app.modules.provisioning import service as provisioning_service
from app.modules.provisioning.models import ProvisioningOutcome
from app.modules.users.models import User
from app.modules.users.repository import UserRepository


class InMemoryStore:
    """Holds pipeline state and implements the repository calls the services make."""

    def __init__(self, organization, fee_types):
        self.organization = organization
        self.fee_types = {fee_type.purpose: fee_type for fee_type in fee_types}
        self.applications: dict = {}
        self.trainees: dict = {}
        self.entries: dict = {}
        self.payments: list = []
        self.users: dict[str, User] = {}
        self.roles: list = []
        self.records: list[dict] = []
        self.fail_next_identity_create = False

    # Organizations
    async def get_organization(self, db, organization_id):
        return self.organization if organization_id == self.organization.id else None

    async def get_fee_type(self, db, organization_id, purpose):
        return self.fee_types.get(purpose)

    # Applications and trainees
    async def create_application(self, db, **fields):
        fields["email"] = fields["email"].lower() if fields.get("email") else None
        application = TraineeApplication(
            id=uuid4(),
            qualification_status=QualificationStatus.PENDING,
            registration_status=RegistrationStatus.APPLIED,
            account_provisioning_status=None,
            submitted_at=datetime.now(UTC),
            **fields,
        )
        self.applications[application.id] = application
        return application

    async def get_application(self, db, application_id):
        return self.applications.get(application_id)

    async def get_by_national_id(self, db, organization_id, national_id):
        return next(
            (a for a in self.applications.values() if a.national_id == national_id), None
        )

    async def trainee_number_exists(self, db, organization_id, trainee_number):
        return any(a.trainee_number == trainee_number for a in self.applications.values())

    async def system_email_taken(self, db, email):
        return email in self.users or any(
            a.system_email == email for a in self.applications.values()
        )

    async def create_trainee(
        self, db, *, application, qualification_id, academic_year, registered_by
    ):
        trainee = Trainee(
            id=uuid4(),
            organization_id=application.organization_id,
            application_id=application.id,
            user_id=application.user_id,
            trainee_number=application.trainee_number,
            qualification_id=qualification_id,
            academic_year=academic_year,
            enrollment_status=EnrollmentStatus.FEE_PENDING,
            registered_by=registered_by,
        )
        self.trainees[trainee.id] = trainee
        return trainee

    async def get_trainee(self, db, trainee_id):
        return self.trainees.get(trainee_id)

    async def get_trainee_by_application(self, db, application_id):
        return next(
            (t for t in self.trainees.values() if t.application_id == application_id), None
        )

    # Ledger
    async def create_entry(self, db, *, organization_id, purpose, amount, **fields):
        entry = LedgerEntry(
            id=uuid4(),
            organization_id=organization_id,
            purpose=purpose,
            amount_required=amount,
            amount_paid=Decimal("0"),
            balance=amount,
            status=LedgerStatus.PENDING,
            **fields,
        )
        self.entries[entry.id] = entry
        return entry

    async def find_entry(self, db, *, purpose, application_id=None, trainee_id=None):
        for entry in self.entries.values():
            if entry.purpose != purpose:
                continue
            if application_id is not None and entry.application_id != application_id:
                continue
            if trainee_id is not None and entry.trainee_id != trainee_id:
                continue
            return entry
        return None

    async def get_entry(self, db, entry_id):
        return self.entries.get(entry_id)

    async def record_payment(self, db, entry, *, amount, method, received_by, notes=None):
        self.payments.append((entry.id, amount, entry.balance))

    # Identities
    async def get_user_by_email(self, db, email):
        return self.users.get(email.lower())

    async def create_user(self, db, *, email, password_hash, first_name, last_name, **flags):
        if self.fail_next_identity_create:
            self.fail_next_identity_create = False
            raise ConnectionError("identity store unavailable")
        user = User(
            id=uuid4(),
            email=email.lower(),
            password_hash=password_hash,
            first_name=first_name,
            last_name=last_name,
            **flags,
        )
        self.users[user.email] = user
        return user

    async def reset_credentials(self, db, user, *, password_hash, must_change_password=True):
        user.password_hash = password_hash
        user.must_change_password = must_change_password
        return user

    async def assign_role(self, db, *, user_id, organization_id, role):
        self.roles.append((user_id, organization_id, role))

    async def create_record(self, db, **fields):
        self.records.append(fields)


# ============================================
# Fixtures
# ============================================


@pytest.fixture
def store(organization_factory, fee_type_factory):
    store = InMemoryStore(
        organization_factory(),
        [
            fee_type_factory(FeePurpose.APPLICATION_FEE, "50.00"),
            fee_type_factory(FeePurpose.REGISTRATION_FEE, "250.00"),
        ],
    )

    with (
        patch.multiple(
            "app.modules.admissions.repository",
            create_application=store.create_application,
            get_by_id=store.get_application,
            get_for_update=store.get_application,
            get_by_national_id=store.get_by_national_id,
            trainee_number_exists=store.trainee_number_exists,
            system_email_taken=store.system_email_taken,
            create_trainee=store.create_trainee,
            get_trainee_by_id=store.get_trainee,
            get_trainee_for_update=store.get_trainee,
            get_trainee_by_application=store.get_trainee_by_application,
        ),
        patch.multiple(
            "app.modules.fees.repository",
            create_entry=store.create_entry,
            find_entry=store.find_entry,
            get_for_update=store.get_entry,
            record_payment=store.record_payment,
        ),
        patch.multiple(
            "app.modules.provisioning.repository",
            create_record=store.create_record,
        ),
        patch.object(OrganizationRepository, "get_by_id", store.get_organization),
        patch.object(OrganizationRepository, "get_for_update", store.get_organization),
        patch.object(FeeTypeRepository, "get_active_for_purpose", store.get_fee_type),
        patch.object(UserRepository, "get_by_email", store.get_user_by_email),
        patch.object(UserRepository, "create", store.create_user),
        patch.object(UserRepository, "reset_credentials", store.reset_credentials),
        patch.object(UserRepository, "assign_role", store.assign_role),
        patch("app.modules.provisioning.service.hash_password", return_value="hashed"),
        patch(
            "app.modules.provisioning.service.send_account_provisioned", new=AsyncMock()
        ),
        patch.object(clearance.settings, "auto_provision_on_clearance", False),
    ):
        yield store


async def _submit(db, store, national_id="SL-1990-0042", first_name="Aminata"):
    return await admissions_service.submit_application(
        db,
        ApplicationCreate(
            organization_id=store.organization.id,
            national_id=national_id,
            first_name=first_name,
            last_name="Kamara",
            email=f"{first_name.lower()}@example.com",
        ),
    )


async def _pay(db, principal, entry_id, amount):
    return await clearance.clear_payment(db, principal, entry_id, Decimal(amount), "cash")


def _assert_ledger_consistent(store):
    for entry in store.entries.values():
        assert entry.amount_paid + entry.balance == entry.amount_required
        assert (entry.status == LedgerStatus.CLEARED) == (entry.balance == 0)


# ============================================
# Flows
# ============================================


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_applicant_becomes_fully_registered(
        self, mock_db, store, registrar, debtor_officer, deliver_events_mock
    ):
        application = await _submit(mock_db, store)

        screening = await admissions_service.screen_application(
            mock_db, registrar, application.id, QualificationStatus.PROVISIONALLY_QUALIFIED
        )
        assert screening.registration_status == RegistrationStatus.PENDING_PAYMENT
        assert application.trainee_number is None

        partial = await _pay(mock_db, debtor_officer, screening.ledger_entry_id, "20.00")
        assert partial.new_status == LedgerStatus.PARTIAL
        assert application.registration_status == RegistrationStatus.PENDING_PAYMENT
        assert application.trainee_number is None

        cleared = await _pay(mock_db, debtor_officer, screening.ledger_entry_id, "30.00")
        assert cleared.new_status == LedgerStatus.CLEARED
        assert cleared.trainee_number == "KVT000001"
        assert cleared.system_email == "kvt000001@trainees.kendeh.edu"
        assert application.registration_status == RegistrationStatus.PAYMENT_CLEARED

        provisioned = await provisioning_service.provision_account(
            mock_db, registrar, application_id=application.id
        )
        assert provisioned.outcome == ProvisioningOutcome.CREATED
        assert application.account_provisioning_status == AccountProvisioningStatus.PROVISIONED

        qualification_id = uuid4()
        registration = await admissions_service.register_application(
            mock_db, registrar, application.id, qualification_id
        )
        assert registration.registration_status == RegistrationStatus.REGISTRATION_FEE_PENDING
        assert registration.amount_due == Decimal("250.00")

        await _pay(mock_db, debtor_officer, registration.ledger_entry_id, "250.00")
        assert application.registration_status == RegistrationStatus.REGISTERED

        enrollment = await admissions_service.finalize_enrollment(
            mock_db, registrar, application.id
        )
        assert enrollment.registration_status == RegistrationStatus.FULLY_REGISTERED
        assert enrollment.enrollment_status == EnrollmentStatus.ACTIVE

        assert list(store.users) == ["kvt000001@trainees.kendeh.edu"]
        trainee = store.trainees[registration.trainee_id]
        assert trainee.user_id == provisioned.user_id
        assert trainee.trainee_number == "KVT000001"
        _assert_ledger_consistent(store)
        assert deliver_events_mock.await_count >= 5

    @pytest.mark.asyncio
    async def test_finalized_enrollment_completes_on_fee_clearance(
        self, mock_db, store, registrar, debtor_officer
    ):
        application = await _submit(mock_db, store)
        screening = await admissions_service.screen_application(
            mock_db, registrar, application.id, QualificationStatus.PROVISIONALLY_QUALIFIED
        )
        await _pay(mock_db, debtor_officer, screening.ledger_entry_id, "50.00")
        await provisioning_service.provision_account(
            mock_db, registrar, application_id=application.id
        )
        registration = await admissions_service.register_application(
            mock_db, registrar, application.id, uuid4()
        )

        early = await admissions_service.finalize_enrollment(mock_db, registrar, application.id)
        assert early.registration_status == RegistrationStatus.REGISTRATION_FEE_PENDING

        await _pay(mock_db, debtor_officer, registration.ledger_entry_id, "250.00")

        assert application.registration_status == RegistrationStatus.FULLY_REGISTERED
        assert store.trainees[registration.trainee_id].enrollment_status == (
            EnrollmentStatus.ACTIVE
        )

    @pytest.mark.asyncio
    async def test_identifiers_are_unique_per_applicant(
        self, mock_db, store, registrar, debtor_officer
    ):
        numbers = []
        for index, name in enumerate(["Aminata", "Fatmata", "Ibrahim"]):
            application = await _submit(mock_db, store, f"SL-2000-{index:04d}", name)
            screening = await admissions_service.screen_application(
                mock_db, registrar, application.id, QualificationStatus.PROVISIONALLY_QUALIFIED
            )
            result = await _pay(mock_db, debtor_officer, screening.ledger_entry_id, "50.00")
            numbers.append(result.trainee_number)

        assert numbers == ["KVT000001", "KVT000002", "KVT000003"]


class TestRegistrationFeeNotConfigured:
    @pytest.mark.asyncio
    async def test_register_refuses_until_fee_is_configured(
        self, mock_db, store, registrar, debtor_officer
    ):
        registration_fee = store.fee_types.pop(FeePurpose.REGISTRATION_FEE)
        application = await _submit(mock_db, store)
        screening = await admissions_service.screen_application(
            mock_db, registrar, application.id, QualificationStatus.PROVISIONALLY_QUALIFIED
        )
        await _pay(mock_db, debtor_officer, screening.ledger_entry_id, "50.00")
        await provisioning_service.provision_account(
            mock_db, registrar, application_id=application.id
        )

        with pytest.raises(admissions_service.FeeNotConfiguredError):
            await admissions_service.register_application(
                mock_db, registrar, application.id, uuid4()
            )

        assert application.registration_status == RegistrationStatus.PAYMENT_CLEARED
        assert store.trainees == {}
        assert [e.purpose for e in store.entries.values()] == [FeePurpose.APPLICATION_FEE]

        store.fee_types[FeePurpose.REGISTRATION_FEE] = registration_fee
        registration = await admissions_service.register_application(
            mock_db, registrar, application.id, uuid4()
        )

        assert registration.registration_status == RegistrationStatus.REGISTRATION_FEE_PENDING
        assert registration.amount_due == Decimal("250.00")


class TestRejection:
    @pytest.mark.asyncio
    async def test_unqualified_applicant_is_closed_without_fees(
        self, mock_db, store, registrar
    ):
        application = await _submit(mock_db, store)

        await admissions_service.screen_application(
            mock_db, registrar, application.id, QualificationStatus.DOES_NOT_QUALIFY
        )
        rejection = await admissions_service.reject_application(
            mock_db, registrar, application.id, "Did not meet entry requirements"
        )

        assert rejection.registration_status == RegistrationStatus.REJECTED
        assert store.entries == {}
        assert application.trainee_number is None

        with pytest.raises(InvalidStateTransitionError):
            await admissions_service.screen_application(
                mock_db, registrar, application.id, QualificationStatus.PROVISIONALLY_QUALIFIED
            )


class TestProvisioningRetry:
    @pytest.mark.asyncio
    async def test_failed_provisioning_succeeds_on_retry(
        self, mock_db, store, registrar, debtor_officer
    ):
        application = await _submit(mock_db, store)
        screening = await admissions_service.screen_application(
            mock_db, registrar, application.id, QualificationStatus.PROVISIONALLY_QUALIFIED
        )
        await _pay(mock_db, debtor_officer, screening.ledger_entry_id, "50.00")

        store.fail_next_identity_create = True
        with pytest.raises(provisioning_service.ProvisioningFailedError):
            await provisioning_service.provision_account(
                mock_db, registrar, application_id=application.id
            )
        assert application.account_provisioning_status == AccountProvisioningStatus.FAILED

        with pytest.raises(admissions_service.ProvisioningRequiredError):
            await admissions_service.register_application(
                mock_db, registrar, application.id, uuid4()
            )

        retry = await provisioning_service.provision_account(
            mock_db, registrar, application_id=application.id
        )

        assert retry.outcome == ProvisioningOutcome.CREATED
        assert application.account_provisioning_status == AccountProvisioningStatus.PROVISIONED
        assert len(store.users) == 1
        assert [r["outcome"] for r in store.records] == [
            ProvisioningOutcome.FAILED,
            ProvisioningOutcome.CREATED,
        ]
