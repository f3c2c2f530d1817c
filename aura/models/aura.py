"""
Aura - an AI companion persona. Owns behavior rules and their trigger log.

personality / senses: JSON-encoded text (same convention as the other
JSON columns here). Deleting an Aura cascades to its rules and log rows.
"""
from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from aura.db.base import Base

if TYPE_CHECKING:
    from aura.models.behavior_rule import BehaviorRule


class Aura(Base):
    __tablename__ = "auras"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    personality: Mapped[str | None] = mapped_column(
        Text, nullable=True,
        comment="JSON: warmth, playfulness, verbosity, empathy, creativity (0-100)",
    )
    senses: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="JSON list of sense ids the Aura can read",
    )
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    proactive_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_evaluation_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    rules: Mapped[list["BehaviorRule"]] = relationship(
        back_populates="aura",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
