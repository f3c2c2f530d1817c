"""initial schema: auras and behavior_rules

Revision ID: 0001
Revises:
Create Date: 2026-10-12 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- auras ---
    op.create_table(
        "auras",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("personality", sa.Text(), nullable=True),
        sa.Column("senses", sa.Text(), nullable=True),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("proactive_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_evaluation_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_auras_id", "auras", ["id"])

    # --- behavior_rules ---
    op.create_table(
        "behavior_rules",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "aura_id",
            sa.Integer(),
            sa.ForeignKey("auras.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("trigger", sa.Text(), nullable=False),
        sa.Column("action", sa.Text(), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_behavior_rules_id", "behavior_rules", ["id"])
    op.create_index("ix_behavior_rules_aura_id", "behavior_rules", ["aura_id"])


def downgrade() -> None:
    op.drop_index("ix_behavior_rules_aura_id", table_name="behavior_rules")
    op.drop_index("ix_behavior_rules_id", table_name="behavior_rules")
    op.drop_table("behavior_rules")
    op.drop_index("ix_auras_id", table_name="auras")
    op.drop_table("auras")
