"""initial ledger schema

Revision ID: 202610190900
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610190900"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column(
            "type",
            sa.Enum(
                "checking", "savings", "credit", "investment", name="accounttype"
            ),
            nullable=False,
        ),
        sa.Column(
            "initial_balance_cents",
            sa.BigInteger(),
            nullable=False,
            server_default="0",
        ),
        sa.Column("deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "initial_balance_cents >= 0",
            name="ck_accounts_initial_balance_non_negative",
        ),
    )
    op.create_index("ix_accounts_user_deleted", "accounts", ["user_id", "deleted"])

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False, unique=True),
        sa.Column("description", sa.Text()),
        sa.Column(
            "is_default", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
    )
    op.create_index(
        "uq_categories_single_default",
        "categories",
        ["is_default"],
        unique=True,
        sqlite_where=sa.text("is_default = 1"),
        postgresql_where=sa.text("is_default = true"),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("description", sa.String(length=500), nullable=False),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        sa.Column(
            "account_id", sa.Integer(), sa.ForeignKey("accounts.id"), nullable=False
        ),
        sa.Column(
            "category_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=False
        ),
        sa.Column("deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "amount_cents <> 0", name="ck_transactions_amount_non_zero"
        ),
    )
    op.create_index(
        "ix_transactions_account_deleted", "transactions", ["account_id", "deleted"]
    )
    op.create_index(
        "ix_transactions_account_date_deleted",
        "transactions",
        ["account_id", "transaction_date", "deleted"],
    )
    op.create_index(
        "ix_transactions_category_date",
        "transactions",
        ["category_id", "transaction_date"],
    )


def downgrade():
    op.drop_index("ix_transactions_category_date", table_name="transactions")
    op.drop_index("ix_transactions_account_date_deleted", table_name="transactions")
    op.drop_index("ix_transactions_account_deleted", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("uq_categories_single_default", table_name="categories")
    op.drop_table("categories")
    op.drop_index("ix_accounts_user_deleted", table_name="accounts")
    op.drop_table("accounts")
    sa.Enum(name="accounttype").drop(op.get_bind(), checkfirst=True)
