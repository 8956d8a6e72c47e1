from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from app.feedback.models import Base

VOTER_ACCOUNT = "account"
VOTER_SESSION = "session"


class Vote(Base):
    """
    One live vote per (voter, suggestion).

    Account and session voters live in separate uniqueness namespaces: each has
    its own partial unique index scoped by ``voter_kind``.
    """

    __tablename__ = "votes"
    __table_args__ = (
        CheckConstraint(
            "(voter_kind = 'account' AND user_id IS NOT NULL AND session_id IS NULL)"
            " OR (voter_kind = 'session' AND session_id IS NOT NULL AND user_id IS NULL)",
            name="ck_votes_one_voter",
        ),
        Index(
            "uq_votes_account_suggestion",
            "user_id",
            "suggestion_id",
            unique=True,
            sqlite_where=text("voter_kind = 'account'"),
            postgresql_where=text("voter_kind = 'account'"),
        ),
        Index(
            "uq_votes_session_suggestion",
            "session_id",
            "suggestion_id",
            unique=True,
            sqlite_where=text("voter_kind = 'session'"),
            postgresql_where=text("voter_kind = 'session'"),
        ),
        Index("idx_votes_suggestion_created", "suggestion_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    suggestion_id: Mapped[int] = mapped_column(ForeignKey("suggestions.id", ondelete="CASCADE"), nullable=False)

    voter_kind: Mapped[str] = mapped_column(String(16), nullable=False)  # account | session
    # Removing a voter must go through the vote ledger so counters follow.
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=True)
    session_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
