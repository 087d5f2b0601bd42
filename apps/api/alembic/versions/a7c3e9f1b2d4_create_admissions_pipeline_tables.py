"""create admissions pipeline tables

Revision ID: a7c3e9f1b2d4
Revises:
Create Date: 2026-10-17 09:00:00.000000

This migration:
1. Creates the enum types used by the pipeline
2. Creates organizations, fee types and the identity store (users, user_roles)
3. Creates trainee_applications and trainees
4. Creates hostel_allocations, the recurring obligation source
5. Creates the fee ledger (ledger_entries, ledger_payments)
6. Creates provisioning_records and notifications

Tables are created in dependency order so every foreign key target exists.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "a7c3e9f1b2d4"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


ENUMS = {
    "user_role": (
        "super_admin",
        "organization_admin",
        "admin",
        "registration_officer",
        "debtor_officer",
        "hostel_coordinator",
        "trainee",
    ),
    "fee_purpose": ("application_fee", "registration_fee", "hostel_fee"),
    "ledger_status": ("pending", "partial", "cleared"),
    "payment_method": ("cash", "bank_transfer", "mobile_money", "card", "cheque"),
    "qualification_status": ("pending", "provisionally_qualified", "does_not_qualify"),
    "registration_status": (
        "applied",
        "pending_payment",
        "payment_cleared",
        "provisionally_admitted",
        "registration_fee_pending",
        "registered",
        "fully_registered",
        "rejected",
    ),
    "account_provisioning_status": ("pending", "provisioned", "failed"),
    "enrollment_status": ("fee_pending", "registered", "active"),
    "allocation_status": ("active", "inactive", "ended"),
    "provisioning_trigger": ("manual", "auto"),
    "provisioning_outcome": ("created", "already_existed", "failed"),
    "notification_priority": ("low", "medium", "high", "urgent"),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _base_columns() -> list[sa.Column]:
    """Primary key and timestamps (from BaseModel)."""
    return [
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    """Create all pipeline tables."""
    bind = op.get_bind()
    for name in ENUMS:
        _enum(name).create(bind, checkfirst=True)

    # Tenants
    op.create_table(
        "organizations",
        *_base_columns(),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("email_domain", sa.String(length=255), nullable=True),
        sa.Column("trainee_id_prefix", sa.String(length=10), nullable=True),
        sa.Column("trainee_sequence", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_organizations_name"), "organizations", ["name"], unique=False)

    op.create_table(
        "fee_types",
        *_base_columns(),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("purpose", _enum("fee_purpose"), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
    )
    op.create_index(
        "ix_fee_types_org_purpose", "fee_types", ["organization_id", "purpose"], unique=False
    )

    # Identity store
    op.create_table(
        "users",
        *_base_columns(),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("must_change_password", sa.Boolean(), nullable=False, server_default="false"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)

    op.create_table(
        "user_roles",
        *_base_columns(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("role", _enum("user_role"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.UniqueConstraint(
            "user_id", "organization_id", "role", name="uq_user_roles_user_org_role"
        ),
    )
    op.create_index(op.f("ix_user_roles_user_id"), "user_roles", ["user_id"], unique=False)
    op.create_index(
        op.f("ix_user_roles_organization_id"), "user_roles", ["organization_id"], unique=False
    )

    # Applications and enrollment
    op.create_table(
        "trainee_applications",
        *_base_columns(),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("national_id", sa.String(length=50), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=30), nullable=True),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("gender", sa.String(length=20), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("trade_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("preferred_level", sa.Integer(), nullable=True),
        sa.Column(
            "needs_hostel_accommodation", sa.Boolean(), nullable=False, server_default="false"
        ),
        sa.Column(
            "qualification_status",
            _enum("qualification_status"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column(
            "registration_status",
            _enum("registration_status"),
            nullable=False,
            server_default="applied",
        ),
        sa.Column(
            "account_provisioning_status", _enum("account_provisioning_status"), nullable=True
        ),
        sa.Column("trainee_number", sa.String(length=30), nullable=True),
        sa.Column("system_email", sa.String(length=255), nullable=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("screened_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("screened_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("screening_remarks", sa.Text(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column(
            "submitted_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("payment_cleared_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("admitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.UniqueConstraint(
            "organization_id", "national_id", name="uq_trainee_applications_org_national_id"
        ),
        sa.UniqueConstraint(
            "organization_id",
            "trainee_number",
            name="uq_trainee_applications_org_trainee_number",
        ),
        sa.UniqueConstraint("system_email", name="uq_trainee_applications_system_email"),
    )
    op.create_index(
        "ix_trainee_applications_org_registration",
        "trainee_applications",
        ["organization_id", "registration_status"],
        unique=False,
    )
    op.create_index(
        "ix_trainee_applications_org_qualification",
        "trainee_applications",
        ["organization_id", "qualification_status"],
        unique=False,
    )

    op.create_table(
        "trainees",
        *_base_columns(),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("application_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("trainee_number", sa.String(length=30), nullable=False),
        sa.Column("qualification_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("academic_year", sa.String(length=9), nullable=False),
        sa.Column(
            "enrollment_status",
            _enum("enrollment_status"),
            nullable=False,
            server_default="fee_pending",
        ),
        sa.Column("registered_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("registered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("enrollment_finalized_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(
            ["application_id"], ["trainee_applications.id"], ondelete="RESTRICT"
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("application_id", name="uq_trainees_application_id"),
    )
    op.create_index(
        op.f("ix_trainees_organization_id"), "trainees", ["organization_id"], unique=False
    )

    # Recurring obligation source
    op.create_table(
        "hostel_allocations",
        *_base_columns(),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("trainee_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("room_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("monthly_fee", sa.Numeric(12, 2), nullable=False),
        sa.Column(
            "status", _enum("allocation_status"), nullable=False, server_default="active"
        ),
        sa.Column(
            "allocated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["trainee_id"], ["trainees.id"], ondelete="CASCADE"),
        sa.CheckConstraint("monthly_fee >= 0", name="ck_hostel_allocations_fee_non_negative"),
    )
    op.create_index(
        op.f("ix_hostel_allocations_organization_id"),
        "hostel_allocations",
        ["organization_id"],
        unique=False,
    )
    op.create_index(
        op.f("ix_hostel_allocations_trainee_id"),
        "hostel_allocations",
        ["trainee_id"],
        unique=False,
    )
    op.create_index(
        "ix_hostel_allocations_status", "hostel_allocations", ["status"], unique=False
    )

    # Fee ledger
    op.create_table(
        "ledger_entries",
        *_base_columns(),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("application_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("trainee_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("purpose", _enum("fee_purpose"), nullable=False),
        sa.Column("fee_type_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("source_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("period", sa.Date(), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("amount_required", sa.Numeric(12, 2), nullable=False),
        sa.Column("amount_paid", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("balance", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", _enum("ledger_status"), nullable=False, server_default="pending"),
        sa.Column("payment_method", _enum("payment_method"), nullable=True),
        sa.Column("requested_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("cleared_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("cleared_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(
            ["application_id"], ["trainee_applications.id"], ondelete="RESTRICT"
        ),
        sa.ForeignKeyConstraint(["trainee_id"], ["trainees.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["fee_type_id"], ["fee_types.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["source_id"], ["hostel_allocations.id"], ondelete="SET NULL"),
        sa.CheckConstraint(
            "(application_id IS NULL) <> (trainee_id IS NULL)",
            name="ck_ledger_entries_single_subject",
        ),
        sa.CheckConstraint("balance >= 0", name="ck_ledger_entries_balance_non_negative"),
        sa.CheckConstraint(
            "amount_paid + balance = amount_required",
            name="ck_ledger_entries_balance_consistent",
        ),
        sa.UniqueConstraint("source_id", "period", name="uq_ledger_entries_source_period"),
    )
    op.create_index(
        op.f("ix_ledger_entries_organization_id"),
        "ledger_entries",
        ["organization_id"],
        unique=False,
    )
    op.create_index(
        "ix_ledger_entries_application_purpose",
        "ledger_entries",
        ["application_id", "purpose"],
        unique=False,
    )
    op.create_index(
        "ix_ledger_entries_trainee_purpose",
        "ledger_entries",
        ["trainee_id", "purpose"],
        unique=False,
    )
    op.create_index(
        "ix_ledger_entries_purpose_period", "ledger_entries", ["purpose", "period"], unique=False
    )
    op.create_index(
        "ix_ledger_entries_status_due_date",
        "ledger_entries",
        ["status", "due_date"],
        unique=False,
    )

    op.create_table(
        "ledger_payments",
        *_base_columns(),
        sa.Column("ledger_entry_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("method", _enum("payment_method"), nullable=False),
        sa.Column("notes", sa.String(length=500), nullable=True),
        sa.Column("received_by", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("balance_after", sa.Numeric(12, 2), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["ledger_entry_id"], ["ledger_entries.id"], ondelete="RESTRICT"),
        sa.CheckConstraint("amount > 0", name="ck_ledger_payments_amount_positive"),
    )
    op.create_index(
        op.f("ix_ledger_payments_ledger_entry_id"),
        "ledger_payments",
        ["ledger_entry_id"],
        unique=False,
    )

    # Provisioning audit trail
    op.create_table(
        "provisioning_records",
        *_base_columns(),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("application_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("trainee_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("trigger", _enum("provisioning_trigger"), nullable=False),
        sa.Column("outcome", _enum("provisioning_outcome"), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["application_id"], ["trainee_applications.id"], ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(["trainee_id"], ["trainees.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index(
        "ix_provisioning_records_application",
        "provisioning_records",
        ["application_id", "created_at"],
        unique=False,
    )

    # In-app notifications
    op.create_table(
        "notifications",
        *_base_columns(),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("type", sa.String(length=50), nullable=False),
        sa.Column(
            "priority", _enum("notification_priority"), nullable=False, server_default="medium"
        ),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("action_url", sa.String(length=500), nullable=True),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index(
        "ix_notifications_user_read", "notifications", ["user_id", "read_at"], unique=False
    )


def downgrade() -> None:
    """Drop all pipeline tables and enum types."""
    for table in (
        "notifications",
        "provisioning_records",
        "ledger_payments",
        "ledger_entries",
        "hostel_allocations",
        "trainees",
        "trainee_applications",
        "user_roles",
        "users",
        "fee_types",
        "organizations",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for name in reversed(list(ENUMS)):
        _enum(name).drop(bind, checkfirst=True)
