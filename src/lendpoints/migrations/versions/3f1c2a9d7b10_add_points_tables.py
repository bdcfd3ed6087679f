"""add points tables

Revision ID: 3f1c2a9d7b10
Revises:
Create Date: 2026-10-19 09:12:44.218305

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

import lendpoints.database.models

# revision identifiers, used by Alembic.
revision: str = "3f1c2a9d7b10"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _decimal_column(name: str, *, nullable: bool = False) -> sa.Column:
    return sa.Column(
        name,
        lendpoints.database.models.base.DecimalMappedToString(),
        nullable=nullable,
    )


def upgrade() -> None:
    """Upgrade schema."""

    op.create_table(
        "protocols",
        sa.Column("id", sa.String(length=42), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("slug", sa.Text(), nullable=False),
        sa.Column("network", sa.Text(), nullable=False),
        sa.Column("total_pool_count", sa.Integer(), nullable=False),
        sa.Column("cumulative_unique_users", sa.Integer(), nullable=False),
        _decimal_column("total_supply_usd"),
        _decimal_column("total_borrow_usd"),
        _decimal_column("total_points"),
        sa.Column("market_ids", sa.JSON(), nullable=False),
        sa.Column("last_update_block", sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "tokens",
        sa.Column("id", sa.String(length=42), nullable=False),
        sa.Column("symbol", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("decimals", sa.Integer(), nullable=False),
        sa.Column("last_price_block_number", sa.Integer(), nullable=True),
        sa.Column("market_id", sa.String(length=42), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "accounts",
        sa.Column("id", sa.String(length=42), nullable=False),
        _decimal_column("total_supply_usd"),
        _decimal_column("total_borrow_usd"),
        _decimal_column("total_points"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "markets",
        sa.Column("id", sa.String(length=42), nullable=False),
        sa.Column("protocol_id", sa.String(length=42), nullable=False),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("input_token_id", sa.String(length=42), nullable=False),
        sa.Column("output_token_id", sa.String(length=42), nullable=True),
        sa.Column("variable_debt_token_id", sa.String(length=42), nullable=True),
        sa.Column("stable_debt_token_id", sa.String(length=42), nullable=True),
        sa.Column("created_timestamp", sa.Integer(), nullable=False),
        sa.Column("created_block_number", sa.Integer(), nullable=False),
        _decimal_column("last_price_usd", nullable=True),
        sa.Column("last_price_block_number", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(
            ["protocol_id"],
            ["protocols.id"],
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("markets", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_markets_protocol_id"), ["protocol_id"], unique=False)

    op.create_table(
        "protocol_accounts",
        sa.Column("id", sa.Text(), nullable=False),
        sa.Column("protocol_id", sa.String(length=42), nullable=False),
        sa.Column("account_id", sa.String(length=42), nullable=False),
        sa.Column("index", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(
            ["account_id"],
            ["accounts.id"],
        ),
        sa.ForeignKeyConstraint(
            ["protocol_id"],
            ["protocols.id"],
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("protocol_accounts", schema=None) as batch_op:
        batch_op.create_index(
            batch_op.f("ix_protocol_accounts_account_id"), ["account_id"], unique=False
        )
        batch_op.create_index(
            batch_op.f("ix_protocol_accounts_protocol_id"), ["protocol_id"], unique=False
        )
        batch_op.create_index(
            "ix_protocol_accounts_protocol_index", ["protocol_id", "index"], unique=True
        )

    op.create_table(
        "market_accounts",
        sa.Column("id", sa.Text(), nullable=False),
        sa.Column("market_id", sa.String(length=42), nullable=False),
        sa.Column("account_id", sa.String(length=42), nullable=False),
        sa.Column(
            "supplied",
            lendpoints.database.models.base.IntMappedToString(length=79),
            nullable=False,
        ),
        sa.Column(
            "borrowed",
            lendpoints.database.models.base.IntMappedToString(length=79),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(
            ["account_id"],
            ["accounts.id"],
        ),
        sa.ForeignKeyConstraint(
            ["market_id"],
            ["markets.id"],
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("market_accounts", schema=None) as batch_op:
        batch_op.create_index(
            batch_op.f("ix_market_accounts_account_id"), ["account_id"], unique=False
        )
        batch_op.create_index(
            batch_op.f("ix_market_accounts_market_id"), ["market_id"], unique=False
        )

    op.create_table(
        "snapshots",
        sa.Column("id", sa.Text(), nullable=False),
        sa.Column("timestamp", sa.Integer(), nullable=False),
        sa.Column("protocol_id", sa.String(length=42), nullable=False),
        sa.Column("account_count", sa.Integer(), nullable=False),
        sa.Column("finalized", sa.Boolean(), nullable=False),
        _decimal_column("total_supply_usd"),
        _decimal_column("total_borrow_usd"),
        _decimal_column("points"),
        sa.ForeignKeyConstraint(
            ["protocol_id"],
            ["protocols.id"],
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("snapshots", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_snapshots_protocol_id"), ["protocol_id"], unique=False)

    op.create_table(
        "market_snapshots",
        sa.Column("id", sa.Text(), nullable=False),
        sa.Column("market_id", sa.String(length=42), nullable=False),
        sa.Column("snapshot_id", sa.Text(), nullable=False),
        sa.Column("account_count", sa.Integer(), nullable=False),
        _decimal_column("total_supply_usd"),
        _decimal_column("total_borrow_usd"),
        _decimal_column("price_usd"),
        sa.ForeignKeyConstraint(
            ["market_id"],
            ["markets.id"],
        ),
        sa.ForeignKeyConstraint(
            ["snapshot_id"],
            ["snapshots.id"],
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("market_snapshots", schema=None) as batch_op:
        batch_op.create_index(
            batch_op.f("ix_market_snapshots_market_id"), ["market_id"], unique=False
        )
        batch_op.create_index(
            batch_op.f("ix_market_snapshots_snapshot_id"), ["snapshot_id"], unique=False
        )


def downgrade() -> None:
    """Downgrade schema."""

    for table_name in (
        "market_snapshots",
        "snapshots",
        "market_accounts",
        "protocol_accounts",
        "markets",
        "accounts",
        "tokens",
        "protocols",
    ):
        op.drop_table(table_name)
