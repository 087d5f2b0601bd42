"""
Trainee identifier minting.

A trainee number is the organization prefix followed by the next value of
the organization's sequence, zero-padded to six digits (``VTC000042``).
The system email is the lowercased trainee number at the organization's
email domain (``vtc000042@trainees.example.edu``).

Minting runs inside the application-fee clearance transaction while the
organization row is locked, so it is deterministic for a given sequence
value and rolls back together with the clearance.

Collisions (for instance a trainee number imported from an older system)
advance the sequence; an email already used by an application or identity
is retried with a ``-2``, ``-3``... suffix on the local part.
"""

import logging
import re

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import RetryableError
from app.modules.admissions import repository
from app.modules.admissions.models import TraineeApplication
from app.modules.organizations.repository import OrganizationRepository

logger = logging.getLogger(__name__)

SEQUENCE_WIDTH = 6

_PREFIX_PATTERN = re.compile(r"[^A-Z0-9]")


class IdentifierMintingError(RetryableError):
    def __init__(self, message: str):
        super().__init__(message=message, error_code="IDENTIFIER_MINTING_FAILED")


def format_trainee_number(prefix: str, sequence: int) -> str:
    """Build a trainee number from a prefix and sequence value."""
    clean_prefix = _PREFIX_PATTERN.sub("", prefix.upper())
    return f"{clean_prefix}{sequence:0{SEQUENCE_WIDTH}d}"


def build_system_email(trainee_number: str, domain: str, suffix: int | None = None) -> str:
    """Build the system email for a trainee number, optionally disambiguated."""
    local_part = trainee_number.lower()
    if suffix is not None:
        local_part = f"{local_part}-{suffix}"
    return f"{local_part}@{domain.strip().lstrip('@').lower()}"


async def mint_identifiers(
    db: AsyncSession,
    application: TraineeApplication,
) -> tuple[str, str]:
    """
    Reserve a trainee number and system email for an application.

    The caller assigns the returned values and commits them together with
    the registration status change.

    Returns:
        (trainee_number, system_email)

    Raises:
        IdentifierMintingError: If the organization cannot mint identifiers or
            no free identifier was found within the configured attempts
    """
    organization = await OrganizationRepository.get_for_update(db, application.organization_id)
    if organization is None:
        raise IdentifierMintingError(
            f"Organization {application.organization_id} not found while minting identifiers."
        )
    if not organization.email_domain:
        raise IdentifierMintingError(
            f"Organization {organization.id} has no email domain configured."
        )

    prefix = organization.trainee_id_prefix or settings.default_trainee_id_prefix
    max_attempts = settings.identifier_mint_max_attempts

    for _ in range(max_attempts):
        organization.trainee_sequence += 1
        trainee_number = format_trainee_number(prefix, organization.trainee_sequence)

        if await repository.trainee_number_exists(db, organization.id, trainee_number):
            logger.warning(f"Trainee number {trainee_number} already in use, advancing sequence")
            continue

        system_email = await _first_free_email(db, trainee_number, organization.email_domain)
        if system_email is None:
            continue

        logger.info(f"Minted {trainee_number} / {system_email} for application {application.id}")
        return trainee_number, system_email

    raise IdentifierMintingError(
        f"No free trainee identifier found after {max_attempts} attempts."
    )


async def _first_free_email(db: AsyncSession, trainee_number: str, domain: str) -> str | None:
    candidates = [build_system_email(trainee_number, domain)]
    candidates += [
        build_system_email(trainee_number, domain, suffix)
        for suffix in range(2, settings.identifier_mint_max_attempts + 1)
    ]

    for candidate in candidates:
        if not await repository.system_email_taken(db, candidate):
            return candidate
        logger.warning(f"System email {candidate} already in use")

    return None
