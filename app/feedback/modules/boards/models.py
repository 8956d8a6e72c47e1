from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.feedback.models import Base

if TYPE_CHECKING:
    from app.feedback.models import User


class Board(Base):
    """A feedback board. Owner is fixed at creation."""

    __tablename__ = "boards"
    __table_args__ = (
        Index("idx_boards_owner_user_id", "owner_user_id"),
        Index("idx_boards_is_public", "is_public"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Visibility / participation flags (owner-only)
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    allow_anonymous_votes: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    allow_public_submissions: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    roadmap_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    default_categories_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Branding
    header_color: Mapped[str | None] = mapped_column(String(16), nullable=True)
    button_color: Mapped[str | None] = mapped_column(String(16), nullable=True)
    background_color: Mapped[str | None] = mapped_column(String(16), nullable=True)
    logo_storage_key: Mapped[str | None] = mapped_column(String(512), nullable=True)
    logo_content_type: Mapped[str | None] = mapped_column(String(128), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    owner: Mapped["User"] = relationship("User", lazy="selectin")
    custom_categories: Mapped[list["BoardCategory"]] = relationship(
        "BoardCategory",
        back_populates="board",
        order_by="BoardCategory.id",
        lazy="selectin",
    )


class BoardCategory(Base):
    __tablename__ = "board_categories"
    __table_args__ = (
        UniqueConstraint("board_id", "name", name="uq_board_categories_board_name"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    board_id: Mapped[int] = mapped_column(ForeignKey("boards.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    color: Mapped[str] = mapped_column(String(16), nullable=False, default="#6b7280")

    board: Mapped[Board] = relationship("Board", back_populates="custom_categories")
