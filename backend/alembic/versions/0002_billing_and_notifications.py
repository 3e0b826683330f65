"""billing records and notifications

Revision ID: 0002_billing_and_notifications
Revises: 0001_tenancy_and_school_data
Create Date: 2026-10-14 10:30:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0002_billing_and_notifications"
down_revision = "0001_tenancy_and_school_data"
branch_labels = None
depends_on = None

billing_status = sa.Enum("pending", "approved", "rejected", name="billing_status")


def upgrade() -> None:
    op.create_table(
        "billing_records",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("school_id", sa.Integer(), sa.ForeignKey("schools.id", ondelete="CASCADE"), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("plan_type", sa.String(length=30), nullable=False),
        sa.Column("payment_method", sa.String(length=20), nullable=False, server_default="mpesa"),
        sa.Column("transaction_id", sa.String(length=100), nullable=True),
        sa.Column("expiry_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", billing_status, nullable=False, server_default="pending"),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "reviewed_by_user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("transaction_id", name="uq_billing_records_transaction_id"),
    )
    op.create_index("ix_billing_records_id", "billing_records", ["id"], unique=False)
    op.create_index("ix_billing_records_school_id", "billing_records", ["school_id"], unique=False)
    op.create_index("ix_billing_records_status", "billing_records", ["status"], unique=False)

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("school_id", sa.Integer(), sa.ForeignKey("schools.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_notifications_id", "notifications", ["id"], unique=False)
    op.create_index("ix_notifications_school_id", "notifications", ["school_id"], unique=False)
    op.create_index("ix_notifications_is_read", "notifications", ["is_read"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_notifications_is_read", table_name="notifications")
    op.drop_index("ix_notifications_school_id", table_name="notifications")
    op.drop_index("ix_notifications_id", table_name="notifications")
    op.drop_table("notifications")

    op.drop_index("ix_billing_records_status", table_name="billing_records")
    op.drop_index("ix_billing_records_school_id", table_name="billing_records")
    op.drop_index("ix_billing_records_id", table_name="billing_records")
    op.drop_table("billing_records")

    billing_status.drop(op.get_bind(), checkfirst=True)
