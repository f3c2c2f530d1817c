"""
BehaviorRule - trigger condition + action attached to one Aura.

trigger / action: JSON-encoded text, validated by aura.schemas.rule on the
way in. `priority` orders rules for display only; it never changes which
rules fire.
"""
from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from aura.db.base import Base

if TYPE_CHECKING:
    from aura.models.aura import Aura


class BehaviorRule(Base):
    __tablename__ = "behavior_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    aura_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("auras.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    trigger: Mapped[str] = mapped_column(Text, nullable=False)
    action: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    aura: Mapped["Aura"] = relationship(back_populates="rules")
