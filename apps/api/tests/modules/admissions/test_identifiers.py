"""
Tests for trainee identifier minting.
"""

from unittest.mock import AsyncMock, patch

import pytest

from app.core.config import settings
from app.modules.admissions.identifiers import (
    IdentifierMintingError,
    build_system_email,
    format_trainee_number,
    mint_identifiers,
)


class TestFormatting:
    def test_trainee_number_is_prefix_and_padded_sequence(self):
        assert format_trainee_number("KVT", 42) == "KVT000042"

    def test_prefix_is_cleaned(self):
        assert format_trainee_number("k-v t", 7) == "KVT000007"

    def test_system_email_lowercases_number(self):
        assert build_system_email("KVT000042", "Trainees.Kendeh.edu") == (
            "kvt000042@trainees.kendeh.edu"
        )

    def test_system_email_suffix(self):
        assert build_system_email("KVT000042", "@trainees.kendeh.edu", 2) == (
            "kvt000042-2@trainees.kendeh.edu"
        )


@pytest.fixture
def repo():
    with patch("app.modules.admissions.identifiers.repository") as mock_repo:
        mock_repo.trainee_number_exists = AsyncMock(return_value=False)
        mock_repo.system_email_taken = AsyncMock(return_value=False)
        yield mock_repo


@pytest.fixture
def org_repo():
    with patch("app.modules.admissions.identifiers.OrganizationRepository") as mock_org_repo:
        yield mock_org_repo


class TestMintIdentifiers:
    @pytest.mark.asyncio
    async def test_mints_next_sequence(
        self, mock_db, repo, org_repo, organization_factory, application_factory
    ):
        organization = organization_factory(trainee_sequence=41)
        org_repo.get_for_update = AsyncMock(return_value=organization)

        number, email = await mint_identifiers(mock_db, application_factory())

        assert number == "KVT000042"
        assert email == "kvt000042@trainees.kendeh.edu"
        assert organization.trainee_sequence == 42

    @pytest.mark.asyncio
    async def test_default_prefix_when_organization_has_none(
        self, mock_db, repo, org_repo, organization_factory, application_factory
    ):
        org_repo.get_for_update = AsyncMock(
            return_value=organization_factory(trainee_id_prefix=None)
        )

        number, _ = await mint_identifiers(mock_db, application_factory())

        assert number == f"{settings.default_trainee_id_prefix}000001"

    @pytest.mark.asyncio
    async def test_taken_number_advances_sequence(
        self, mock_db, repo, org_repo, organization_factory, application_factory
    ):
        organization = organization_factory(trainee_sequence=0)
        org_repo.get_for_update = AsyncMock(return_value=organization)
        repo.trainee_number_exists = AsyncMock(side_effect=[True, False])

        number, _ = await mint_identifiers(mock_db, application_factory())

        assert number == "KVT000002"
        assert organization.trainee_sequence == 2

    @pytest.mark.asyncio
    async def test_taken_email_gets_suffix(
        self, mock_db, repo, org_repo, organization_factory, application_factory
    ):
        org_repo.get_for_update = AsyncMock(return_value=organization_factory())
        repo.system_email_taken = AsyncMock(side_effect=[True, False])

        number, email = await mint_identifiers(mock_db, application_factory())

        assert number == "KVT000001"
        assert email == "kvt000001-2@trainees.kendeh.edu"

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(
        self, mock_db, repo, org_repo, organization_factory, application_factory
    ):
        org_repo.get_for_update = AsyncMock(return_value=organization_factory())
        repo.trainee_number_exists = AsyncMock(return_value=True)

        with patch.object(settings, "identifier_mint_max_attempts", 3):
            with pytest.raises(IdentifierMintingError) as exc_info:
                await mint_identifiers(mock_db, application_factory())

        assert repo.trainee_number_exists.await_count == 3
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_requires_email_domain(
        self, mock_db, repo, org_repo, organization_factory, application_factory
    ):
        org_repo.get_for_update = AsyncMock(return_value=organization_factory(email_domain=None))

        with pytest.raises(IdentifierMintingError):
            await mint_identifiers(mock_db, application_factory())

        repo.trainee_number_exists.assert_not_awaited()
