"""
Tests for the identity provisioner.

These tests verify:
- A cleared applicant gets exactly one identity, linked and role-assigned
- An existing identity is reused instead of duplicated
- A unique-email race is treated as "already existed"
- Failures mark the application failed and can be retried
- Ineligible applications are refused without side effects
"""

from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from app.core.config import settings
from app.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from app.modules.admissions.models import (
    AccountProvisioningStatus,
    QualificationStatus,
    RegistrationStatus,
)
from app.modules.provisioning import router as provisioning_router
from app.modules.provisioning.models import ProvisioningOutcome, ProvisioningTrigger
from app.modules.provisioning.schemas import ProvisionRequest, ProvisionResult
from app.modules.provisioning.service import (
    DEFAULT_ROLE,
    ProvisioningFailedError,
    ProvisioningNotEligibleError,
    provision_account,
)
from app.modules.users.models import User
from app.modules.users.repository import IdentityConflictError

SYSTEM_EMAIL = "kvt000001@trainees.kendeh.edu"

# ============================================
# Fixtures
# ============================================


@pytest.fixture
def cleared_application(application_factory):
    return application_factory(
        qualification_status=QualificationStatus.PROVISIONALLY_QUALIFIED,
        registration_status=RegistrationStatus.PAYMENT_CLEARED,
        trainee_number="KVT000001",
        system_email=SYSTEM_EMAIL,
    )


@pytest.fixture
def identity():
    return User(
        id=uuid4(),
        email=SYSTEM_EMAIL,
        password_hash="hashed",
        first_name="Aminata",
        last_name="Kamara",
        is_active=True,
        is_verified=True,
        must_change_password=True,
    )


@pytest.fixture
def admissions_repo(cleared_application):
    with patch("app.modules.provisioning.service.admissions_repository") as mock_repo:
        mock_repo.get_for_update = AsyncMock(return_value=cleared_application)
        mock_repo.get_trainee_by_application = AsyncMock(return_value=None)
        yield mock_repo


@pytest.fixture
def records():
    with patch("app.modules.provisioning.service.repository") as mock_repo:
        mock_repo.create_record = AsyncMock()
        yield mock_repo


@pytest.fixture
def users():
    with patch("app.modules.provisioning.service.UserRepository") as mock_users:
        mock_users.get_by_email = AsyncMock(return_value=None)
        mock_users.create = AsyncMock()
        mock_users.reset_credentials = AsyncMock()
        mock_users.assign_role = AsyncMock()
        yield mock_users


@pytest.fixture
def welcome_email():
    with patch(
        "app.modules.provisioning.service.send_account_provisioned",
        new=AsyncMock(return_value=True),
    ) as mock_send:
        yield mock_send


@pytest.fixture(autouse=True)
def fast_hash():
    with patch(
        "app.modules.provisioning.service.hash_password", return_value="hashed"
    ) as mock_hash:
        yield mock_hash


def _outcomes(records) -> list[ProvisioningOutcome]:
    return [c.kwargs["outcome"] for c in records.create_record.await_args_list]


# ============================================
# Provisioning
# ============================================


class TestProvisionAccount:
    @pytest.mark.asyncio
    async def test_creates_and_links_identity(
        self,
        mock_db,
        registrar,
        cleared_application,
        identity,
        admissions_repo,
        records,
        users,
        welcome_email,
        deliver_events_mock,
        fast_hash,
    ):
        users.create = AsyncMock(return_value=identity)

        result = await provision_account(
            mock_db, registrar, application_id=cleared_application.id
        )

        assert result.outcome == ProvisioningOutcome.CREATED
        assert result.user_id == identity.id
        assert result.email == SYSTEM_EMAIL
        assert result.account_provisioning_status == AccountProvisioningStatus.PROVISIONED
        assert cleared_application.user_id == identity.id

        create_kwargs = users.create.await_args.kwargs
        assert create_kwargs["email"] == SYSTEM_EMAIL
        assert create_kwargs["must_change_password"] is True
        assert create_kwargs["password_hash"] == "hashed"
        fast_hash.assert_called_once_with(settings.default_trainee_password)
        assert users.assign_role.await_args.kwargs["role"] == DEFAULT_ROLE
        assert _outcomes(records) == [ProvisioningOutcome.CREATED]

        welcome_email.assert_awaited_once()
        assert welcome_email.await_args.kwargs["to_email"] == "aminata@example.com"
        deliver_events_mock.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_existing_identity_is_reused(
        self,
        mock_db,
        registrar,
        cleared_application,
        identity,
        admissions_repo,
        records,
        users,
        welcome_email,
        fast_hash,
    ):
        users.get_by_email = AsyncMock(return_value=identity)

        result = await provision_account(
            mock_db, registrar, application_id=cleared_application.id
        )

        assert result.outcome == ProvisioningOutcome.ALREADY_EXISTED
        assert cleared_application.user_id == identity.id
        users.create.assert_not_called()
        users.reset_credentials.assert_not_called()
        welcome_email.assert_not_awaited()
        fast_hash.assert_not_called()

    @pytest.mark.asyncio
    async def test_concurrent_create_is_already_existed(
        self,
        mock_db,
        registrar,
        cleared_application,
        identity,
        admissions_repo,
        records,
        users,
        welcome_email,
    ):
        users.get_by_email = AsyncMock(side_effect=[None, identity])
        users.create = AsyncMock(side_effect=IdentityConflictError(SYSTEM_EMAIL))

        result = await provision_account(
            mock_db, registrar, application_id=cleared_application.id
        )

        assert result.outcome == ProvisioningOutcome.ALREADY_EXISTED
        assert result.user_id == identity.id
        assert cleared_application.account_provisioning_status == (
            AccountProvisioningStatus.PROVISIONED
        )

    @pytest.mark.asyncio
    async def test_already_linked_returns_without_changes(
        self, mock_db, registrar, cleared_application, admissions_repo, records, users
    ):
        linked_id = uuid4()
        cleared_application.user_id = linked_id
        cleared_application.account_provisioning_status = AccountProvisioningStatus.PROVISIONED

        result = await provision_account(
            mock_db, registrar, application_id=cleared_application.id
        )

        assert result.outcome == ProvisioningOutcome.ALREADY_EXISTED
        assert result.user_id == linked_id
        users.get_by_email.assert_not_called()
        users.create.assert_not_called()
        assert _outcomes(records) == [ProvisioningOutcome.ALREADY_EXISTED]

    @pytest.mark.asyncio
    async def test_force_reprovision_resets_credentials(
        self,
        mock_db,
        registrar,
        cleared_application,
        identity,
        admissions_repo,
        records,
        users,
        welcome_email,
    ):
        cleared_application.user_id = identity.id
        cleared_application.account_provisioning_status = AccountProvisioningStatus.PROVISIONED
        users.get_by_email = AsyncMock(return_value=identity)

        result = await provision_account(
            mock_db,
            registrar,
            application_id=cleared_application.id,
            force_reprovision=True,
        )

        assert result.outcome == ProvisioningOutcome.ALREADY_EXISTED
        assert result.account_provisioning_status == AccountProvisioningStatus.PROVISIONED
        users.reset_credentials.assert_awaited_once()
        users.create.assert_not_called()
        welcome_email.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_links_existing_trainee(
        self,
        mock_db,
        registrar,
        cleared_application,
        identity,
        admissions_repo,
        records,
        users,
        welcome_email,
        trainee_factory,
    ):
        trainee = trainee_factory(cleared_application)
        admissions_repo.get_trainee_by_application = AsyncMock(return_value=trainee)
        admissions_repo.get_trainee_by_id = AsyncMock(return_value=trainee)
        users.create = AsyncMock(return_value=identity)

        await provision_account(mock_db, registrar, trainee_id=trainee.id)

        assert trainee.user_id == identity.id
        assert records.create_record.await_args.kwargs["trainee_id"] == trainee.id


class TestProvisioningFailures:
    @pytest.mark.asyncio
    async def test_identity_failure_marks_failed(
        self,
        mock_db,
        registrar,
        cleared_application,
        admissions_repo,
        records,
        users,
        welcome_email,
        deliver_events_mock,
    ):
        users.create = AsyncMock(side_effect=RuntimeError("identity store unavailable"))

        with pytest.raises(ProvisioningFailedError) as exc_info:
            await provision_account(mock_db, registrar, application_id=cleared_application.id)

        assert exc_info.value.status_code == 503
        assert cleared_application.account_provisioning_status == AccountProvisioningStatus.FAILED
        assert cleared_application.user_id is None
        assert _outcomes(records) == [ProvisioningOutcome.FAILED]
        assert "identity store unavailable" in records.create_record.await_args.kwargs[
            "error_message"
        ]
        welcome_email.assert_not_awaited()
        deliver_events_mock.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retry_after_linkage_failure_reuses_identity(
        self,
        mock_db,
        registrar,
        cleared_application,
        identity,
        admissions_repo,
        records,
        users,
        welcome_email,
    ):
        users.create = AsyncMock(return_value=identity)
        users.assign_role = AsyncMock(side_effect=[RuntimeError("deadlock detected"), MagicMock()])

        with pytest.raises(ProvisioningFailedError):
            await provision_account(mock_db, registrar, application_id=cleared_application.id)

        assert cleared_application.account_provisioning_status == AccountProvisioningStatus.FAILED

        # The identity from the first attempt is now found by email
        users.get_by_email = AsyncMock(return_value=identity)
        result = await provision_account(
            mock_db,
            registrar,
            application_id=cleared_application.id,
            trigger=ProvisioningTrigger.MANUAL,
        )

        assert result.outcome == ProvisioningOutcome.ALREADY_EXISTED
        assert result.user_id == identity.id
        assert cleared_application.account_provisioning_status == (
            AccountProvisioningStatus.PROVISIONED
        )
        users.create.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_not_qualified_is_refused(
        self, mock_db, registrar, cleared_application, admissions_repo, records, users
    ):
        cleared_application.qualification_status = QualificationStatus.DOES_NOT_QUALIFY

        with pytest.raises(ProvisioningNotEligibleError) as exc_info:
            await provision_account(mock_db, registrar, application_id=cleared_application.id)

        assert exc_info.value.error_code == "INSUFFICIENT_QUALIFICATION_STATUS"
        assert cleared_application.account_provisioning_status is None
        users.create.assert_not_called()
        records.create_record.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_identifiers_is_refused(
        self, mock_db, registrar, cleared_application, admissions_repo, records, users
    ):
        cleared_application.trainee_number = None
        cleared_application.system_email = None

        with pytest.raises(ProvisioningNotEligibleError) as exc_info:
            await provision_account(mock_db, registrar, application_id=cleared_application.id)

        assert exc_info.value.error_code == "IDENTIFIERS_NOT_ASSIGNED"
        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_other_organization_denied(
        self, mock_db, other_org_registrar, cleared_application, admissions_repo, users
    ):
        with pytest.raises(PermissionDeniedError):
            await provision_account(
                mock_db, other_org_registrar, application_id=cleared_application.id
            )

        users.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_requires_exactly_one_reference(self, mock_db, registrar):
        with pytest.raises(ValidationError):
            await provision_account(mock_db, registrar)

        with pytest.raises(ValidationError):
            await provision_account(
                mock_db, registrar, application_id=uuid4(), trainee_id=uuid4()
            )

    @pytest.mark.asyncio
    async def test_unknown_trainee(self, mock_db, registrar, admissions_repo):
        admissions_repo.get_trainee_by_id = AsyncMock(return_value=None)

        with pytest.raises(NotFoundError):
            await provision_account(mock_db, registrar, trainee_id=uuid4())


# ============================================
# Endpoint
# ============================================


class TestProvisionEndpoint:
    @pytest.mark.asyncio
    async def test_http_calls_are_recorded_as_manual(self, mock_db, registrar):
        application_id = uuid4()
        data = ProvisionRequest.model_validate(
            {"application_id": str(application_id), "trigger": "auto"}
        )
        result = ProvisionResult(
            application_id=application_id,
            user_id=uuid4(),
            email=SYSTEM_EMAIL,
            outcome=ProvisioningOutcome.CREATED,
            account_provisioning_status=AccountProvisioningStatus.PROVISIONED,
        )

        with patch(
            "app.modules.provisioning.service.provision_account",
            new=AsyncMock(return_value=result),
        ) as provision:
            assert await provisioning_router.provision_account(data, mock_db, registrar) is result

        assert "trigger" not in data.model_dump()
        assert provision.await_args.kwargs["trigger"] == ProvisioningTrigger.MANUAL
