"""
Tests for the status transition tables.

Covers the qualification, registration, account provisioning and ledger
axes: allowed moves, rejected moves, same-status writes and terminal states.
"""

import pytest

from app.core.errors import InvalidStateTransitionError
from app.modules.admissions.models import (
    AccountProvisioningStatus,
    QualificationStatus,
    RegistrationStatus,
)
from app.modules.admissions.repository import (
    VALID_REGISTRATION_TRANSITIONS,
    transition_provisioning,
    transition_qualification,
    transition_registration,
)
from app.modules.fees.models import LedgerStatus
from app.modules.fees.repository import transition_ledger
from app.modules.shared.state import InvalidStatusTransitionError, check_transition

# ============================================
# Qualification axis
# ============================================


class TestQualificationTransitions:
    @pytest.mark.parametrize(
        "decision",
        [QualificationStatus.PROVISIONALLY_QUALIFIED, QualificationStatus.DOES_NOT_QUALIFY],
    )
    def test_pending_moves_to_a_decision(self, application_factory, decision):
        application = application_factory()

        transition_qualification(application, decision)

        assert application.qualification_status == decision

    def test_decision_is_final(self, application_factory):
        application = application_factory(
            qualification_status=QualificationStatus.DOES_NOT_QUALIFY
        )

        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            transition_qualification(application, QualificationStatus.PROVISIONALLY_QUALIFIED)

        assert exc_info.value.axis == "qualification"
        assert application.qualification_status == QualificationStatus.DOES_NOT_QUALIFY

    def test_cannot_return_to_pending(self, application_factory):
        application = application_factory(
            qualification_status=QualificationStatus.PROVISIONALLY_QUALIFIED
        )

        with pytest.raises(InvalidStatusTransitionError):
            transition_qualification(application, QualificationStatus.PENDING)


# ============================================
# Registration axis
# ============================================


class TestRegistrationTransitions:
    def test_happy_path_walks_every_status(self, application_factory):
        application = application_factory()
        path = [
            RegistrationStatus.PENDING_PAYMENT,
            RegistrationStatus.PAYMENT_CLEARED,
            RegistrationStatus.PROVISIONALLY_ADMITTED,
            RegistrationStatus.REGISTRATION_FEE_PENDING,
            RegistrationStatus.REGISTERED,
            RegistrationStatus.FULLY_REGISTERED,
        ]

        for status in path:
            transition_registration(application, status)

        assert application.registration_status == RegistrationStatus.FULLY_REGISTERED

    def test_cannot_skip_payment(self, application_factory):
        application = application_factory()

        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            transition_registration(application, RegistrationStatus.PAYMENT_CLEARED)

        assert "applied" in str(exc_info.value)
        assert "payment_cleared" in str(exc_info.value)

    def test_rejection_only_from_applied(self, application_factory):
        application = application_factory(registration_status=RegistrationStatus.PENDING_PAYMENT)

        with pytest.raises(InvalidStatusTransitionError):
            transition_registration(application, RegistrationStatus.REJECTED)

    @pytest.mark.parametrize(
        "terminal", [RegistrationStatus.FULLY_REGISTERED, RegistrationStatus.REJECTED]
    )
    def test_terminal_states_have_no_exits(self, terminal):
        assert VALID_REGISTRATION_TRANSITIONS[terminal] == set()

    def test_same_status_write_is_accepted(self, application_factory):
        application = application_factory(registration_status=RegistrationStatus.PENDING_PAYMENT)

        transition_registration(application, RegistrationStatus.PENDING_PAYMENT)

        assert application.registration_status == RegistrationStatus.PENDING_PAYMENT


# ============================================
# Account provisioning axis
# ============================================


class TestProvisioningTransitions:
    def test_null_moves_to_pending(self, application_factory):
        application = application_factory()

        transition_provisioning(application, AccountProvisioningStatus.PENDING)

        assert application.account_provisioning_status == AccountProvisioningStatus.PENDING

    def test_null_cannot_jump_to_provisioned(self, application_factory):
        application = application_factory()

        with pytest.raises(InvalidStatusTransitionError):
            transition_provisioning(application, AccountProvisioningStatus.PROVISIONED)

    def test_failed_can_be_retried(self, application_factory):
        application = application_factory(
            account_provisioning_status=AccountProvisioningStatus.FAILED
        )

        transition_provisioning(application, AccountProvisioningStatus.PENDING)
        transition_provisioning(application, AccountProvisioningStatus.PROVISIONED)

        assert application.account_provisioning_status == AccountProvisioningStatus.PROVISIONED

    def test_provisioned_cannot_fail(self, application_factory):
        application = application_factory(
            account_provisioning_status=AccountProvisioningStatus.PROVISIONED
        )

        with pytest.raises(InvalidStatusTransitionError):
            transition_provisioning(application, AccountProvisioningStatus.FAILED)


# ============================================
# Ledger axis and shared checker
# ============================================


class TestLedgerTransitions:
    def test_partial_then_cleared(self, entry_factory):
        entry = entry_factory()

        transition_ledger(entry, LedgerStatus.PARTIAL)
        transition_ledger(entry, LedgerStatus.CLEARED)

        assert entry.status == LedgerStatus.CLEARED

    def test_cleared_never_reopens(self, entry_factory):
        entry = entry_factory(status=LedgerStatus.CLEARED)

        with pytest.raises(InvalidStatusTransitionError):
            transition_ledger(entry, LedgerStatus.PARTIAL)


def test_transition_error_maps_to_conflict():
    with pytest.raises(InvalidStateTransitionError) as exc_info:
        check_transition(
            {LedgerStatus.CLEARED: set()}, "ledger", LedgerStatus.CLEARED, LedgerStatus.PENDING
        )

    assert exc_info.value.status_code == 409
    assert "terminal state" in exc_info.value.message
