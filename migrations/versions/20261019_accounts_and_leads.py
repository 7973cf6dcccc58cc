"""create users, verification tokens, leads and activity log tables"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "accounts_leads_20261019"
down_revision = None
branch_labels = None
depends_on = None


ROLES = ("student", "admin", "super_admin")
TOKEN_PURPOSES = ("verify_email", "reset_password")
LEAD_STATUSES = ("new", "contacted", "in_progress", "verification_sent", "converted", "closed")
ADMISSION_STATUSES = ("not_applied", "applied", "confirmed")


def _enums():
    return (
        sa.Enum(*ROLES, name="user_role"),
        sa.Enum(*TOKEN_PURPOSES, name="token_purpose"),
        sa.Enum(*LEAD_STATUSES, name="lead_status"),
        sa.Enum(*ADMISSION_STATUSES, name="lead_admission_status"),
    )


def upgrade():
    role_enum, purpose_enum, status_enum, admission_enum = _enums()
    bind = op.get_bind()
    for enum in (role_enum, purpose_enum, status_enum, admission_enum):
        enum.create(bind, checkfirst=True)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("country", sa.String(length=80), nullable=True),
        sa.Column("role", role_enum, nullable=False, server_default="student"),
        sa.Column("email_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("email_verified_at", sa.DateTime(), nullable=True),
        sa.Column("is_blocked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("google_subject", sa.String(length=255), nullable=True, unique=True),
        sa.Column("picture", sa.String(length=1024), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_role", "users", ["role"])

    op.create_table(
        "verification_tokens",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("token_hash", sa.String(length=64), nullable=False, unique=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("purpose", purpose_enum, nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("consumed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_verification_tokens_user_id", "verification_tokens", ["user_id"])
    op.create_index("ix_verification_tokens_expires_at", "verification_tokens", ["expires_at"])

    op.create_table(
        "leads",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("full_name", sa.String(length=120), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("study_country", sa.String(length=80), nullable=False),
        sa.Column("admission_status", admission_enum, nullable=False, server_default="not_applied"),
        sa.Column("intake", sa.String(length=40), nullable=False),
        sa.Column("university_preference", sa.String(length=255), nullable=True),
        sa.Column("loan_range", sa.String(length=60), nullable=False),
        sa.Column("city", sa.String(length=120), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", status_enum, nullable=False, server_default="new"),
        sa.Column("last_contacted_at", sa.DateTime(), nullable=True),
        sa.Column("verification_sent_at", sa.DateTime(), nullable=True),
        sa.Column("verification_sent_by", sa.String(length=255), nullable=True),
        sa.Column(
            "converted_user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("converted_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_leads_email", "leads", ["email"])
    op.create_index("ix_leads_study_country", "leads", ["study_country"])
    op.create_index("ix_leads_status", "leads", ["status"])

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("actor_user_id", sa.Integer(), nullable=True),
        sa.Column("target_email", sa.String(length=255), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_activity_logs_action", "activity_logs", ["action"])
    op.create_index("ix_activity_logs_target_email", "activity_logs", ["target_email"])
    op.create_index("ix_activity_logs_created_at", "activity_logs", ["created_at"])


def downgrade():
    op.drop_index("ix_activity_logs_created_at", table_name="activity_logs")
    op.drop_index("ix_activity_logs_target_email", table_name="activity_logs")
    op.drop_index("ix_activity_logs_action", table_name="activity_logs")
    op.drop_table("activity_logs")

    op.drop_index("ix_leads_status", table_name="leads")
    op.drop_index("ix_leads_study_country", table_name="leads")
    op.drop_index("ix_leads_email", table_name="leads")
    op.drop_table("leads")

    op.drop_index("ix_verification_tokens_expires_at", table_name="verification_tokens")
    op.drop_index("ix_verification_tokens_user_id", table_name="verification_tokens")
    op.drop_table("verification_tokens")

    op.drop_index("ix_users_role", table_name="users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")

    bind = op.get_bind()
    for enum in _enums():
        enum.drop(bind, checkfirst=True)
