"""Payout ledger, fee policy and audit tables."""
from __future__ import annotations

from collections.abc import Iterable

import sqlalchemy as sa
from alembic import op

revision = "20261018_01"
down_revision = None
branch_labels = None
depends_on: Iterable[str] | None = None

_ENUMS = ("transaction_status", "deposit_status", "payout_type", "gibrapay_status", "wallet_type")


def _drop_enum(name: str) -> None:
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        op.execute(sa.text(f"DROP TYPE IF EXISTS {name}"))


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:  # noqa: D401
    """Create payout ledger tables and constraints."""

    transaction_status = sa.Enum("pending", "completed", name="transaction_status")
    deposit_status = sa.Enum("pending", "confirmed", name="deposit_status")
    payout_type = sa.Enum("pending", "manual", "automatic_mpesa", "automatic_emola", name="payout_type")
    gibrapay_status = sa.Enum("ussd_sent", "processing", "complete", "failed", name="gibrapay_status")
    wallet_type = sa.Enum("mpesa", "emola", name="wallet_type")

    for enum_type in (transaction_status, deposit_status, payout_type, gibrapay_status, wallet_type):
        enum_type.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "profiles",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("display_name", sa.String(length=255)),
        sa.Column("payout_method", sa.String(length=32)),
        sa.Column("payout_details", sa.JSON()),
        *_timestamps(),
    )

    op.create_table(
        "reports",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("company_id", sa.String(length=36), nullable=False),
        sa.Column("pentester_id", sa.String(length=36), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="accepted"),
        sa.Column("reward_amount", sa.Numeric(12, 2)),
        *_timestamps(),
        sa.ForeignKeyConstraint(["pentester_id"], ["profiles.id"], ondelete="RESTRICT"),
    )

    op.create_table(
        "platform_transactions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("report_id", sa.String(length=36), nullable=False),
        sa.Column("company_id", sa.String(length=36), nullable=False),
        sa.Column("pentester_id", sa.String(length=36), nullable=False),
        sa.Column("gross_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("platform_fee", sa.Numeric(12, 2), nullable=False),
        sa.Column("net_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", transaction_status, nullable=False, server_default="pending"),
        sa.Column("deposit_status", deposit_status, nullable=False, server_default="pending"),
        sa.Column("deposit_confirmed_at", sa.DateTime(timezone=True)),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("pentester_paid", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("pentester_paid_at", sa.DateTime(timezone=True)),
        sa.Column("pentester_payment_reference", sa.String(length=128)),
        sa.Column("pentester_payment_notes", sa.Text()),
        sa.Column("payout_type", payout_type, nullable=False, server_default="pending"),
        sa.Column("gibrapay_status", gibrapay_status),
        sa.Column("gibrapay_pentester_tx_id", sa.String(length=128)),
        sa.Column("gibrapay_platform_tx_id", sa.String(length=128)),
        sa.Column("platform_fee_remitted_at", sa.DateTime(timezone=True)),
        sa.Column("gibrapay_error", sa.Text()),
        sa.Column("wallet_type", wallet_type),
        sa.Column("phone_number", sa.String(length=32)),
        sa.Column("direct_payment", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("payout_claimed_at", sa.DateTime(timezone=True)),
        sa.Column("payout_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lock_version", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("report_id", name="uq_platform_transactions_report_id"),
    )
    op.create_index("ix_platform_transactions_deposit_status", "platform_transactions", ["deposit_status"])
    op.create_index("ix_platform_transactions_pentester_paid", "platform_transactions", ["pentester_paid"])

    op.create_table(
        "platform_settings",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("setting_key", sa.String(length=64), nullable=False),
        sa.Column("setting_value", sa.Text(), nullable=False),
        sa.Column("description", sa.String(length=255)),
        *_timestamps(),
        sa.UniqueConstraint("setting_key", name="uq_platform_settings_setting_key"),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("actor", sa.String(length=320)),
        sa.Column("action", sa.String(length=128), nullable=False),
        sa.Column("resource_type", sa.String(length=128), nullable=False),
        sa.Column("resource_id", sa.String(length=128)),
        sa.Column("payload", sa.JSON()),
        sa.Column("ip_address", sa.String(length=64)),
        *_timestamps(),
    )
    op.create_index("ix_audit_logs_resource_id", "audit_logs", ["resource_id"])


def downgrade() -> None:  # noqa: D401
    """Drop payout ledger tables."""

    op.drop_index("ix_audit_logs_resource_id", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_table("platform_settings")

    op.drop_index("ix_platform_transactions_pentester_paid", table_name="platform_transactions")
    op.drop_index("ix_platform_transactions_deposit_status", table_name="platform_transactions")
    op.drop_table("platform_transactions")

    op.drop_table("reports")
    op.drop_table("profiles")

    for name in _ENUMS:
        _drop_enum(name)
