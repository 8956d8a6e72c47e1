from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.feedback.models import Base

if TYPE_CHECKING:
    from app.feedback.modules.suggestions.models import Suggestion


class RoadmapItem(Base):
    __tablename__ = "roadmap_items"
    __table_args__ = (
        Index("idx_roadmap_items_board_status_eta", "board_id", "status", "estimated_release_date"),
        Index("idx_roadmap_items_board_created", "board_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    board_id: Mapped[int] = mapped_column(ForeignKey("boards.id", ondelete="CASCADE"), nullable=False)
    suggestion_id: Mapped[int | None] = mapped_column(ForeignKey("suggestions.id", ondelete="SET NULL"), nullable=True)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="planned")  # planned, in-progress, completed, cancelled
    priority: Mapped[str | None] = mapped_column(String(16), nullable=True)  # low, medium, high
    item_type: Mapped[str | None] = mapped_column(String(32), nullable=True)  # feature, improvement, bug-fix, announcement

    # Suggestion.vote_count copied at promotion; not refreshed afterwards.
    vote_snapshot: Mapped[int | None] = mapped_column(Integer, nullable=True)

    estimated_release_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    suggestion: Mapped["Suggestion | None"] = relationship("Suggestion", lazy="selectin")
