"""initial loyalty ledger schema

Revision ID: 0001_initial_ledger
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_initial_ledger"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "loyalty_accounts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("telegram_id", sa.BIGINT(), nullable=True),
        sa.Column("first_name", sa.String(), nullable=True),
        sa.Column("bot_accessible", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("current_balance", sa.Integer(), server_default="0", nullable=False),
        sa.Column("total_purchases", sa.Integer(), server_default="0", nullable=False),
        sa.Column("total_saved", sa.Float(), server_default="0", nullable=False),
        sa.Column("last_activity", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("registration_date", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.CheckConstraint("current_balance >= 0", name="ck_loyalty_accounts_balance_non_negative"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_loyalty_accounts_id", "loyalty_accounts", ["id"])
    op.create_index("ix_loyalty_accounts_telegram_id", "loyalty_accounts", ["telegram_id"], unique=True)
    op.create_index("ix_loyalty_accounts_activity_balance", "loyalty_accounts", ["last_activity", "current_balance"])

    op.create_table(
        "stores",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_stores_id", "stores", ["id"])

    op.create_table(
        "loyalty_transactions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=True),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("origin", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("purchase_amount", sa.Float(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_loyalty_transactions_amount_positive"),
        sa.CheckConstraint("type IN ('earn', 'spend')", name="ck_loyalty_transactions_type"),
        sa.ForeignKeyConstraint(["account_id"], ["loyalty_accounts.id"]),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_loyalty_transactions_id", "loyalty_transactions", ["id"])
    op.create_index("ix_loyalty_transactions_account_created", "loyalty_transactions", ["account_id", "created_at"])

    settings_table = op.create_table(
        "loyalty_settings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("earning_percent", sa.Float(), server_default="4", nullable=False),
        sa.Column("max_discount_percent", sa.Float(), server_default="20", nullable=False),
        sa.Column("expiry_days", sa.Integer(), server_default="45", nullable=False),
        sa.Column("min_redemption_amount", sa.Float(), server_default="1", nullable=False),
        sa.Column("welcome_bonus", sa.Integer(), server_default="500", nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    # Строка настроек по умолчанию: ледгер читает ее с первой операции
    op.bulk_insert(
        settings_table,
        [
            {
                "id": 1,
                "earning_percent": 4.0,
                "max_discount_percent": 20.0,
                "expiry_days": 45,
                "min_redemption_amount": 1.0,
                "welcome_bonus": 500,
            }
        ],
    )


def downgrade() -> None:
    op.drop_table("loyalty_settings")
    op.drop_index("ix_loyalty_transactions_account_created", table_name="loyalty_transactions")
    op.drop_index("ix_loyalty_transactions_id", table_name="loyalty_transactions")
    op.drop_table("loyalty_transactions")
    op.drop_index("ix_stores_id", table_name="stores")
    op.drop_table("stores")
    op.drop_index("ix_loyalty_accounts_activity_balance", table_name="loyalty_accounts")
    op.drop_index("ix_loyalty_accounts_telegram_id", table_name="loyalty_accounts")
    op.drop_index("ix_loyalty_accounts_id", table_name="loyalty_accounts")
    op.drop_table("loyalty_accounts")
