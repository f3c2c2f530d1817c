"""
RuleTriggerLog - one row per rule firing. Append-only.

Durable form of the trigger history: the evaluator's cooldown and
frequency state is rebuilt from these rows every cycle.
"""
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from aura.db.base import Base


class RuleTriggerLog(Base):
    __tablename__ = "rule_trigger_log"
    __table_args__ = (
        Index("ix_rule_trigger_log_rule_time", "rule_id", "triggered_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    rule_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("behavior_rules.id", ondelete="CASCADE"), nullable=False,
    )
    aura_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("auras.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    triggered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True,
    )
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    action_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
