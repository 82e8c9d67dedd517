"""initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-16 12:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "user",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("full_name", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("role", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_user_email", "user", ["email"], unique=True)
    op.create_index("ix_user_role", "user", ["role"])

    op.create_table(
        "donor",
        sa.Column("id", sa.Integer(), sa.ForeignKey("user.id"), primary_key=True),
        sa.Column("phone_number", sa.String(), nullable=True),
        sa.Column("gender", sa.String(), nullable=False),
        sa.Column("blood_type", sa.String(), nullable=True),
        sa.Column("is_available", sa.Boolean(), nullable=False),
        sa.Column("last_donation_date", sa.DateTime(), nullable=True),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("city", sa.String(), nullable=True),
        sa.Column("region", sa.String(), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("total_donations", sa.Integer(), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False),
    )
    op.create_index("ix_donor_blood_type", "donor", ["blood_type"])
    op.create_index("ix_donor_is_available", "donor", ["is_available"])

    op.create_table(
        "hospital",
        sa.Column("id", sa.Integer(), sa.ForeignKey("user.id"), primary_key=True),
        sa.Column("hospital_name", sa.String(), nullable=False),
        sa.Column("license_number", sa.String(), nullable=False),
        sa.Column("contact_number", sa.String(), nullable=True),
        sa.Column("city", sa.String(), nullable=True),
        sa.Column("region", sa.String(), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
    )

    op.create_table(
        "request",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("hospital_id", sa.Integer(), sa.ForeignKey("hospital.id"), nullable=False),
        sa.Column("kind", sa.String(), nullable=False),
        sa.Column("blood_type", sa.String(), nullable=True),
        sa.Column("organ_type", sa.String(), nullable=True),
        sa.Column("urgency", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("required_by", sa.DateTime(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("notes", sa.String(length=500), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_request_hospital_id", "request", ["hospital_id"])
    op.create_index("ix_request_urgency", "request", ["urgency"])
    op.create_index("ix_request_status", "request", ["status"])

    op.create_table(
        "donation",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("donor_id", sa.Integer(), sa.ForeignKey("donor.id"), nullable=False),
        sa.Column("request_id", sa.Integer(), sa.ForeignKey("request.id"), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("scheduled_date", sa.DateTime(), nullable=True),
        sa.Column("completed_date", sa.DateTime(), nullable=True),
        sa.Column("notes", sa.String(length=1000), nullable=True),
        sa.Column("result", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_donation_donor_id", "donation", ["donor_id"])
    op.create_index("ix_donation_request_id", "donation", ["request_id"])
    op.create_index("ix_donation_status", "donation", ["status"])
    active = sa.text("status != 'cancelled'")
    op.create_index(
        "uq_donation_active_pair",
        "donation",
        ["donor_id", "request_id"],
        unique=True,
        sqlite_where=active,
        postgresql_where=active,
    )

    op.create_table(
        "notification",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("message", sa.String(length=1000), nullable=False),
        sa.Column("read", sa.Boolean(), nullable=False),
        sa.Column("related_id", sa.Integer(), nullable=True),
        sa.Column("related_type", sa.String(), nullable=True),
        sa.Column("data", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_notification_user_id", "notification", ["user_id"])
    op.create_index("ix_notification_read", "notification", ["read"])


def downgrade() -> None:
    op.drop_table("notification")
    op.drop_index("uq_donation_active_pair", table_name="donation")
    op.drop_table("donation")
    op.drop_table("request")
    op.drop_table("hospital")
    op.drop_table("donor")
    op.drop_table("user")
