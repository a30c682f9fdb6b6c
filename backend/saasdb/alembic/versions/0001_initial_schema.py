"""initial schema: users, software, contract history, audits, notifications

Revision ID: 0001_initial_schema
Revises:
Create Date: 2025-05-20 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


# Enums are stored as VARCHAR holding the member name (native_enum=False).
PAYMENT_FREQUENCY = sa.Enum("MONTHLY", "ANNUALLY", "ONE_TIME", name="payment_frequency_enum", native_enum=False)
SOFTWARE_STATUS = sa.Enum("ACTIVE", "INACTIVE", "PENDING_APPROVAL", name="software_status_enum", native_enum=False)
NOTICE_PERIOD = sa.Enum("NONE", "DAYS_30", "DAYS_60", "DAYS_90", name="notice_period_enum", native_enum=False)
LICENSE_TYPE = sa.Enum(
    "PER_USER", "SITE", "USAGE_BASED", "PERPETUAL", "FREEMIUM", "OTHER",
    name="license_type_enum",
    native_enum=False,
)
AUDIT_FREQUENCY = sa.Enum("NONE", "MONTHLY", "QUARTERLY", "ANNUALLY", name="audit_frequency_enum", native_enum=False)
HISTORY_STATUS = sa.Enum("AUTO_RENEWED", "RENEWED", "EXPIRED", name="contract_history_status_enum", native_enum=False)
USER_ROLE = sa.Enum("ADMINISTRATOR", "SOFTWARE_OWNER", "DEPARTMENT_HEAD", name="user_role_enum", native_enum=False)
NOTIFICATION_TYPE = sa.Enum(
    "RENEWAL_REMINDER", "AUDIT_DUE", "CONTRACT_EXPIRING", "LICENSE_UTILIZATION", "UTILIZATION_WARNING",
    name="notification_type_enum",
    native_enum=False,
)
EMAIL_STATUS = sa.Enum("QUEUED", "SENT", "FAILED", "SKIPPED_NO_PROVIDER", name="email_status_enum", native_enum=False)


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "departments",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("role", USER_ROLE, nullable=False),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)
    op.create_index(op.f("ix_users_role"), "users", ["role"], unique=False)
    op.create_index(op.f("ix_users_is_active"), "users", ["is_active"], unique=False)
    op.create_index("idx_users_role_active", "users", ["role", "is_active"], unique=False)

    op.create_table(
        "user_departments",
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("department_id", sa.String(length=36), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["department_id"], ["departments.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("user_id", "department_id"),
    )

    op.create_table(
        "software",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("vendor", sa.String(length=255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("cost", sa.Numeric(12, 2), nullable=False),
        sa.Column("payment_frequency", PAYMENT_FREQUENCY, nullable=False),
        sa.Column("status", SOFTWARE_STATUS, nullable=False),
        sa.Column("contract_start_date", sa.Date(), nullable=True),
        sa.Column("renewal_date", sa.Date(), nullable=True),
        sa.Column("notice_period", NOTICE_PERIOD, nullable=False),
        sa.Column("auto_renewal", sa.Boolean(), nullable=False),
        sa.Column("license_type", LICENSE_TYPE, nullable=True),
        sa.Column("seats_purchased", sa.Integer(), nullable=True),
        sa.Column("seats_utilized", sa.Integer(), nullable=True),
        sa.Column("usage_metric", sa.String(length=128), nullable=True),
        sa.Column("usage_limit", sa.Integer(), nullable=True),
        sa.Column("current_usage", sa.Integer(), nullable=True),
        sa.Column("sites_licensed", sa.Integer(), nullable=True),
        sa.Column("license_notes", sa.Text(), nullable=True),
        sa.Column("audit_frequency", AUDIT_FREQUENCY, nullable=False),
        sa.Column("owner_id", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "renewal_date IS NULL OR contract_start_date IS NULL "
            "OR renewal_date >= contract_start_date",
            name="ck_software_renewal_after_start",
        ),
        sa.ForeignKeyConstraint(["owner_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_software_name"), "software", ["name"], unique=False)
    op.create_index(op.f("ix_software_status"), "software", ["status"], unique=False)
    op.create_index("idx_software_auto_renewal_due", "software", ["auto_renewal", "renewal_date"], unique=False)
    op.create_index("idx_software_owner", "software", ["owner_id"], unique=False)

    op.create_table(
        "software_departments",
        sa.Column("software_id", sa.String(length=36), nullable=False),
        sa.Column("department_id", sa.String(length=36), nullable=False),
        sa.ForeignKeyConstraint(["software_id"], ["software.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["department_id"], ["departments.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("software_id", "department_id"),
    )

    op.create_table(
        "contract_history",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("software_id", sa.String(length=36), nullable=False),
        sa.Column("contract_start_date", sa.Date(), nullable=True),
        sa.Column("contract_end_date", sa.Date(), nullable=True),
        sa.Column("cost", sa.Numeric(12, 2), nullable=True),
        sa.Column("payment_frequency", PAYMENT_FREQUENCY, nullable=True),
        sa.Column("notice_period", NOTICE_PERIOD, nullable=True),
        sa.Column("auto_renewal", sa.Boolean(), nullable=False),
        sa.Column("status", HISTORY_STATUS, nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by_user_id", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["software_id"], ["software.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_contract_history_software_id"), "contract_history", ["software_id"], unique=False)
    op.create_index(
        "idx_contract_history_software_created",
        "contract_history",
        ["software_id", "created_at"],
        unique=False,
    )

    op.create_table(
        "audits",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("software_id", sa.String(length=36), nullable=False),
        sa.Column("scheduled_date", sa.Date(), nullable=False),
        sa.Column("completed_date", sa.Date(), nullable=True),
        sa.Column("frequency", AUDIT_FREQUENCY, nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("verify_active_users", sa.Boolean(), nullable=False),
        sa.Column("verify_active_users_completed", sa.Boolean(), nullable=False),
        sa.Column("check_seat_utilization", sa.Boolean(), nullable=False),
        sa.Column("check_seat_utilization_completed", sa.Boolean(), nullable=False),
        sa.Column("review_feature_usage", sa.Boolean(), nullable=False),
        sa.Column("review_feature_usage_completed", sa.Boolean(), nullable=False),
        sa.Column("update_department_allocation", sa.Boolean(), nullable=False),
        sa.Column("update_department_allocation_completed", sa.Boolean(), nullable=False),
        sa.Column("current_seats_used", sa.Integer(), nullable=True),
        sa.Column("current_usage_amount", sa.Integer(), nullable=True),
        sa.Column("usage_metric_snapshot", sa.String(length=128), nullable=True),
        sa.Column("audit_findings", sa.Text(), nullable=True),
        sa.Column("recommended_actions", sa.Text(), nullable=True),
        sa.Column("completed_by_user_id", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["software_id"], ["software.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["completed_by_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_audits_software_id"), "audits", ["software_id"], unique=False)
    op.create_index(op.f("ix_audits_scheduled_date"), "audits", ["scheduled_date"], unique=False)
    op.create_index("idx_audits_scheduled_pending", "audits", ["scheduled_date", "completed_date"], unique=False)
    op.create_index(
        "uq_audits_one_pending_per_software",
        "audits",
        ["software_id"],
        unique=True,
        postgresql_where=sa.text("completed_date IS NULL"),
        sqlite_where=sa.text("completed_date IS NULL"),
    )

    op.create_table(
        "notification_preferences",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("notification_type", NOTIFICATION_TYPE, nullable=False),
        sa.Column("is_enabled", sa.Boolean(), nullable=False),
        sa.Column("days_before", sa.Integer(), nullable=True),
        sa.Column("utilization_threshold", sa.Integer(), nullable=True),
        sa.Column("email_address", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "notification_type", name="uq_notification_pref_user_type"),
    )
    op.create_index(op.f("ix_notification_preferences_user_id"), "notification_preferences", ["user_id"], unique=False)

    op.create_table(
        "email_logs",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("recipient", sa.String(length=255), nullable=False),
        sa.Column("subject", sa.String(length=255), nullable=False),
        sa.Column("template_key", sa.String(length=128), nullable=False),
        sa.Column("status", EMAIL_STATUS, nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("context_json", sa.JSON(), nullable=True),
        sa.Column("correlation_id", sa.String(length=64), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_email_logs_id"), "email_logs", ["id"], unique=False)
    op.create_index(op.f("ix_email_logs_status"), "email_logs", ["status"], unique=False)
    op.create_index(op.f("ix_email_logs_correlation_id"), "email_logs", ["correlation_id"], unique=False)
    op.create_index("ix_email_logs_created", "email_logs", ["created_at"], unique=False)
    op.create_index("ix_email_logs_template_status", "email_logs", ["template_key", "status"], unique=False)
    op.create_index("ix_email_logs_recipient", "email_logs", ["recipient"], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("email_logs")
    op.drop_table("notification_preferences")
    op.drop_index("uq_audits_one_pending_per_software", table_name="audits")
    op.drop_table("audits")
    op.drop_table("contract_history")
    op.drop_table("software_departments")
    op.drop_table("software")
    op.drop_table("user_departments")
    op.drop_table("users")
    op.drop_table("departments")
