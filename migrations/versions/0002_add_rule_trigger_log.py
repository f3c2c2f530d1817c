"""add rule_trigger_log table

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-14

One row per rule firing. Cooldown and frequency state is rebuilt from it
on every evaluation cycle. Append-only; downgrade drops cleanly.
"""
from alembic import op
import sqlalchemy as sa

revision = "0002"
down_revision = "0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "rule_trigger_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "rule_id",
            sa.Integer(),
            sa.ForeignKey("behavior_rules.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "aura_id",
            sa.Integer(),
            sa.ForeignKey("auras.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("triggered_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("action_type", sa.String(32), nullable=True),
    )
    op.create_index("ix_rule_trigger_log_id", "rule_trigger_log", ["id"])
    op.create_index("ix_rule_trigger_log_aura_id", "rule_trigger_log", ["aura_id"])
    op.create_index("ix_rule_trigger_log_triggered_at", "rule_trigger_log", ["triggered_at"])
    op.create_index(
        "ix_rule_trigger_log_rule_time", "rule_trigger_log", ["rule_id", "triggered_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_rule_trigger_log_rule_time", table_name="rule_trigger_log")
    op.drop_index("ix_rule_trigger_log_triggered_at", table_name="rule_trigger_log")
    op.drop_index("ix_rule_trigger_log_aura_id", table_name="rule_trigger_log")
    op.drop_index("ix_rule_trigger_log_id", table_name="rule_trigger_log")
    op.drop_table("rule_trigger_log")
