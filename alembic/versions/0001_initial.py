"""Initial schema: notes and transaction verifications.

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18
"""

import sqlalchemy as sa
from alembic import op

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "notes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("verification_status", sa.String(20), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "transaction_verifications",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("note_id", sa.Integer(), nullable=False),
        sa.Column("tx_hash", sa.String(128), nullable=False, unique=True),
        sa.Column("content_hash", sa.String(128)),
        sa.Column("owner_wallet", sa.String(128)),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("retry_count", sa.Integer(), nullable=False),
        sa.Column("max_retries", sa.Integer(), nullable=False),
        sa.Column("last_error", sa.Text()),
        sa.Column("blockchain_content_hash", sa.Text()),
        sa.Column("blockchain_action", sa.Text()),
        sa.Column("blockchain_owner", sa.Text()),
        sa.Column("hash_match", sa.Boolean(), nullable=True),
        sa.Column("verified_at", sa.DateTime(timezone=True)),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_tv_note", "transaction_verifications", ["note_id"])
    op.create_index("idx_tv_status", "transaction_verifications", ["status"])
    op.create_index("idx_tv_owner", "transaction_verifications", ["owner_wallet"])


def downgrade() -> None:
    op.drop_index("idx_tv_owner", table_name="transaction_verifications")
    op.drop_index("idx_tv_status", table_name="transaction_verifications")
    op.drop_index("idx_tv_note", table_name="transaction_verifications")
    op.drop_table("transaction_verifications")
    op.drop_table("notes")
