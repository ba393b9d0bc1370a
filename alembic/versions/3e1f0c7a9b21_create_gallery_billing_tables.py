"""create gallery and billing tables

Revision ID: 3e1f0c7a9b21
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3e1f0c7a9b21"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(320), nullable=True, index=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "customers",
        sa.Column(
            "user_id",
            sa.String(36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("stripe_customer_id", sa.String(64), nullable=False, unique=True, index=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "images",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("tags", sa.JSON, nullable=False),
        sa.Column("file_name", sa.String(255), nullable=False),
        sa.Column("file_size", sa.Integer, nullable=False, server_default="0"),
        sa.Column("file_type", sa.String(64), nullable=False, server_default="image/jpeg"),
        sa.Column("storage_path", sa.String(512), nullable=False),
        sa.Column("url", sa.String(1024), nullable=False),
        sa.Column("thumbnail_url", sa.String(1024), nullable=True),
        sa.Column("width", sa.Integer, nullable=True),
        sa.Column("height", sa.Integer, nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "subscriptions",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("user_id", sa.String(36), nullable=False, index=True),
        sa.Column("provider_subscription_id", sa.String(64), nullable=True, unique=True),
        sa.Column("payment_provider", sa.String(16), nullable=False),
        sa.Column("plan_type", sa.String(16), nullable=False),
        sa.Column("billing_interval", sa.String(16), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, index=True),
        sa.Column("current_period_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("price_monthly", sa.Numeric(10, 2), nullable=False),
        sa.Column("price_yearly", sa.Numeric(10, 2), nullable=False),
        sa.Column("features", sa.JSON, nullable=False),
        sa.Column("cancel_at_period_end", sa.Boolean, nullable=False, server_default=sa.false()),
        *_timestamps(),
    )

    op.create_table(
        "purchases",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("user_id", sa.String(36), nullable=True, index=True),
        sa.Column(
            "image_id",
            sa.String(36),
            sa.ForeignKey("images.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("license_type", sa.String(32), nullable=False),
        sa.Column("amount_paid", sa.Integer, nullable=False),
        sa.Column("currency", sa.String(8), nullable=False),
        sa.Column("payment_method", sa.String(16), nullable=False),
        sa.Column("provider_session_id", sa.String(128), nullable=False),
        sa.Column("payment_status", sa.String(16), nullable=False),
        sa.Column("purchased_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("payment_method", "provider_session_id", name="uq_purchases_provider_session"),
    )

    op.create_table(
        "image_downloads",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column(
            "image_id",
            sa.String(36),
            sa.ForeignKey("images.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("downloaded_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("download_type", sa.String(16), nullable=False),
        sa.Column("download_year", sa.Integer, nullable=False),
        sa.Column("download_month", sa.Integer, nullable=False),
        sa.UniqueConstraint(
            "user_id", "image_id", "download_year", "download_month",
            name="uq_image_downloads_user_image_month",
        ),
    )
    op.create_index(
        "ix_image_downloads_user_month",
        "image_downloads",
        ["user_id", "download_year", "download_month"],
    )


def downgrade() -> None:
    op.drop_index("ix_image_downloads_user_month", table_name="image_downloads")
    op.drop_table("image_downloads")
    op.drop_table("purchases")
    op.drop_table("subscriptions")
    op.drop_table("images")
    op.drop_table("customers")
    op.drop_table("users")
