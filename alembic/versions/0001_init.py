from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "fulfillments",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("program_id", sa.String(64), index=True),
        sa.Column("request_tx", sa.String(100), index=True),
        sa.Column("response_tx", sa.String(100), index=True),
        sa.Column("vrf_account", sa.String(64)),
        sa.Column("seed_hex", sa.String(80)),
        sa.Column("proof_hex", sa.String(200)),
        sa.Column("status", sa.String(16), index=True),
        sa.Column("source", sa.String(16), default="live"),
        sa.Column("error", sa.Text),
        sa.Column("created_at", sa.DateTime, nullable=False),
    )


def downgrade():
    op.drop_table("fulfillments")
