from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import func, select

from app.feedback.constants import DEFAULT_TRENDING_WINDOW_DAYS, RANK_MODES
from app.feedback.identity import Identity
from app.feedback.modules.suggestions.models import Suggestion
from app.feedback.modules.voting.models import Vote
from app.feedback.modules.voting.service import has_voted

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RankedSuggestion:
    suggestion: Suggestion
    has_voted: bool
    recent_votes: int | None = None  # only filled in trending mode

    def to_dict(self) -> dict:
        sg = self.suggestion
        data = {
            "suggestion": {
                "id": sg.id,
                "boardId": sg.board_id,
                "title": sg.title,
                "description": sg.description,
                "category": sg.category,
                "status": sg.status,
                "voteCount": sg.vote_count,
                "createdAt": sg.created_at.isoformat(),
            },
            "hasVoted": self.has_voted,
        }
        if self.recent_votes is not None:
            data["recentVotes"] = self.recent_votes
        return data


def rank(
    s: "Session",
    board_id: int,
    mode: str,
    identity: Identity,
    as_of: datetime | None = None,
    *,
    window_days: int = DEFAULT_TRENDING_WINDOW_DAYS,
    status: str | None = None,
    category: str | None = None,
) -> list[RankedSuggestion]:
    """
    Order a board's suggestions for display.

    - new:      created_at desc, id desc
    - top:      vote_count desc, created_at desc, id desc
    - trending: votes cast in the trailing window desc, created_at desc, id desc

    Each call re-reads the store. Visibility is the caller's job.
    """
    mode = (mode or "").strip().lower()
    if mode not in RANK_MODES:
        raise ValueError(f"Unknown sort mode {mode!r}. Must be one of: {', '.join(RANK_MODES)}")

    filters = [Suggestion.board_id == board_id]
    if status:
        filters.append(Suggestion.status == status)
    if category:
        filters.append(Suggestion.category == category.lower())

    recent_by_id: dict[int, int] | None = None
    if mode == "new":
        q = select(Suggestion).where(*filters).order_by(Suggestion.created_at.desc(), Suggestion.id.desc())
        suggestions = list(s.execute(q).scalars())
    elif mode == "top":
        q = select(Suggestion).where(*filters).order_by(
            Suggestion.vote_count.desc(), Suggestion.created_at.desc(), Suggestion.id.desc()
        )
        suggestions = list(s.execute(q).scalars())
    else:
        since = (as_of or datetime.utcnow()) - timedelta(days=window_days)
        recent = (
            select(Vote.suggestion_id, func.count(Vote.id).label("recent"))
            .where(Vote.created_at >= since)
            .group_by(Vote.suggestion_id)
            .subquery()
        )
        recent_count = func.coalesce(recent.c.recent, 0)
        q = (
            select(Suggestion, recent_count.label("recent"))
            .outerjoin(recent, recent.c.suggestion_id == Suggestion.id)
            .where(*filters)
            .order_by(recent_count.desc(), Suggestion.created_at.desc(), Suggestion.id.desc())
        )
        rows = s.execute(q).all()
        suggestions = [row[0] for row in rows]
        recent_by_id = {row[0].id: int(row[1]) for row in rows}

    voted = has_voted(s, identity, [sg.id for sg in suggestions])
    logger.debug("Ranked board=%s mode=%s n=%s", board_id, mode, len(suggestions))
    return [
        RankedSuggestion(
            suggestion=sg,
            has_voted=sg.id in voted,
            recent_votes=recent_by_id.get(sg.id, 0) if recent_by_id is not None else None,
        )
        for sg in suggestions
    ]
