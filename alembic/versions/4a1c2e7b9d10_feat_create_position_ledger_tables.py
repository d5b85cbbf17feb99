"""feat: create transaction ledger, positions and processing state tables

Revision ID: 4a1c2e7b9d10
Revises:
Create Date: 2026-10-18 09:00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "4a1c2e7b9d10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "transactions",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("transaction_id", sa.BigInteger(), nullable=False),
        sa.Column("trade_id", sa.BigInteger(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("security_code", sa.String(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("side", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_transactions_transaction_id", "transactions", ["transaction_id"], unique=True)
    op.create_index("ix_transactions_trade_id", "transactions", ["trade_id"], unique=False)
    op.create_index("ix_transactions_security_code", "transactions", ["security_code"], unique=False)
    op.create_index("ix_transactions_trade_version", "transactions", ["trade_id", "version"], unique=False)

    op.create_table(
        "positions",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("security_code", sa.String(), nullable=False),
        sa.Column("quantity", sa.BigInteger(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_positions_security_code", "positions", ["security_code"], unique=True)

    op.create_table(
        "processing_state",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("state_key", sa.String(), nullable=False),
        sa.Column("last_processed_transaction_id", sa.BigInteger(), nullable=False),
        sa.Column("last_processed_timestamp", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("state_key", name="_processing_state_key_uc"),
    )


def downgrade() -> None:
    op.drop_table("processing_state")
    op.drop_index("ix_positions_security_code", table_name="positions")
    op.drop_table("positions")
    op.drop_index("ix_transactions_trade_version", table_name="transactions")
    op.drop_index("ix_transactions_security_code", table_name="transactions")
    op.drop_index("ix_transactions_trade_id", table_name="transactions")
    op.drop_index("ix_transactions_transaction_id", table_name="transactions")
    op.drop_table("transactions")
