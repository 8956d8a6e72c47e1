from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.feedback.models import Base

if TYPE_CHECKING:
    from app.feedback.models import User


class Suggestion(Base):
    __tablename__ = "suggestions"
    __table_args__ = (
        CheckConstraint("vote_count >= 0", name="ck_suggestions_vote_count_nonnegative"),
        Index("idx_suggestions_board_created", "board_id", "created_at"),
        Index("idx_suggestions_board_votes", "board_id", "vote_count"),
        Index("idx_suggestions_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    board_id: Mapped[int] = mapped_column(ForeignKey("boards.id", ondelete="CASCADE"), nullable=False)

    # Author is optional: anonymous submissions keep only the browser session id.
    author_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    author_session_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")  # pending, in-progress, completed, rejected

    # Denormalized: always equal to the number of live votes. Written only by the vote ledger.
    vote_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    author: Mapped["User | None"] = relationship("User", lazy="selectin")
    comments: Mapped[list["SuggestionComment"]] = relationship(
        "SuggestionComment",
        back_populates="suggestion",
        order_by="SuggestionComment.created_at",
        lazy="selectin",
    )


class SuggestionComment(Base):
    __tablename__ = "suggestion_comments"
    __table_args__ = (
        Index("idx_suggestion_comments_suggestion_id", "suggestion_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    suggestion_id: Mapped[int] = mapped_column(ForeignKey("suggestions.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    suggestion: Mapped[Suggestion] = relationship("Suggestion", back_populates="comments")
    user: Mapped["User"] = relationship("User", lazy="selectin")
