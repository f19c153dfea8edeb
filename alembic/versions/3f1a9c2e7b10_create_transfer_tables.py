"""create_owners_tokens_transfers_and_system_state

Revision ID: 3f1a9c2e7b10
Revises:
Create Date: 2026-10-19 09:12:44.108233

"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f1a9c2e7b10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create owners, tokens, transfers and system_state tables."""
    op.create_table(
        "owners",
        sa.Column("id", sa.String(length=42), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "tokens",
        sa.Column("id", sa.String(length=78), nullable=False),
        # uint256 token index
        sa.Column("index", sa.Numeric(precision=78, scale=0), nullable=False),
        sa.Column("uri", sa.String(), nullable=True),
        sa.Column("owner_id", sa.String(length=42), nullable=True),
        sa.ForeignKeyConstraint(["owner_id"], ["owners.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_tokens_owner_id"), "tokens", ["owner_id"], unique=False)

    op.create_table(
        "transfers",
        sa.Column("id", sa.String(length=32), nullable=False),
        sa.Column("block_number", sa.Integer(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("tx_hash", sa.String(length=66), nullable=False),
        sa.Column("from_id", sa.String(length=42), nullable=False),
        sa.Column("to_id", sa.String(length=42), nullable=False),
        sa.Column("token_id", sa.String(length=78), nullable=False),
        sa.ForeignKeyConstraint(["from_id"], ["owners.id"]),
        sa.ForeignKeyConstraint(["to_id"], ["owners.id"]),
        sa.ForeignKeyConstraint(["token_id"], ["tokens.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_transfers_block_number"), "transfers", ["block_number"], unique=False
    )
    op.create_index(op.f("ix_transfers_from_id"), "transfers", ["from_id"], unique=False)
    op.create_index(op.f("ix_transfers_to_id"), "transfers", ["to_id"], unique=False)
    op.create_index(op.f("ix_transfers_token_id"), "transfers", ["token_id"], unique=False)

    op.create_table(
        "system_state",
        sa.Column("key", sa.String(length=255), nullable=False),
        sa.Column("state_value", sa.JSON(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("key"),
    )


def downgrade() -> None:
    """Drop all indexer tables."""
    op.drop_table("system_state")
    op.drop_index(op.f("ix_transfers_token_id"), table_name="transfers")
    op.drop_index(op.f("ix_transfers_to_id"), table_name="transfers")
    op.drop_index(op.f("ix_transfers_from_id"), table_name="transfers")
    op.drop_index(op.f("ix_transfers_block_number"), table_name="transfers")
    op.drop_table("transfers")
    op.drop_index(op.f("ix_tokens_owner_id"), table_name="tokens")
    op.drop_table("tokens")
    op.drop_table("owners")
