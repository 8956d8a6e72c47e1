"""
Suggestion aggregate and lifecycle.

VOTE COUNTER
============
``Suggestion.vote_count`` is a denormalized copy of the number of live votes.

Writer                    | How
--------------------------|------------------------------------------------
Vote ledger (toggle)      | apply_delta(): atomic SQL UPDATE, floored at 0
Admin correction          | recount_votes(): re-derived from the votes table
Anything else             | never

There is no second copy (the old board-embedded suggestion list is gone), so
ranking and roadmap promotion read this column directly.

DELETION
========
delete_suggestions_cascade() removes, in order: votes, roadmap links, comments,
suggestions. Every step deletes by filter, so an interrupted run can simply be
repeated.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import case, delete, func, select, update

from app.feedback.audit import record_event
from app.feedback.constants import COMMENT_MAX, DESCRIPTION_MAX, SUGGESTION_STATUSES, TITLE_MAX
from app.feedback.errors import Forbidden, NotFound, ValidationError
from app.feedback.identity import Identity
from app.feedback.models import User
from app.feedback.modules.suggestions.models import Suggestion, SuggestionComment

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.feedback.modules.boards.models import Board

logger = logging.getLogger(__name__)


def get_suggestion(s: "Session", suggestion_id: int, *, board_id: int | None = None) -> Suggestion:
    suggestion = s.get(Suggestion, suggestion_id)
    if suggestion is None or (board_id is not None and suggestion.board_id != board_id):
        raise NotFound("Suggestion not found.")
    return suggestion


# ---------- Counter ----------
def current_count(s: "Session", suggestion_id: int) -> int:
    count = s.execute(select(Suggestion.vote_count).where(Suggestion.id == suggestion_id)).scalar_one_or_none()
    if count is None:
        raise NotFound("Suggestion not found.")
    return count


def apply_delta(s: "Session", suggestion_id: int, delta: int) -> int:
    """
    Add ``delta`` to the counter in the store and return the new value.
    Only the vote ledger calls this.
    """
    if delta:
        bumped = Suggestion.vote_count + delta
        result = s.execute(
            update(Suggestion)
            .where(Suggestion.id == suggestion_id)
            .values(vote_count=case((bumped < 0, 0), else_=bumped))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFound("Suggestion not found.")
        cached = s.identity_map.get(s.identity_key(Suggestion, suggestion_id))
        if cached is not None:
            s.expire(cached, ["vote_count"])
    return current_count(s, suggestion_id)


def recount_votes(
    s: "Session",
    *,
    suggestion_id: int | None = None,
    board_id: int | None = None,
    dry_run: bool = False,
) -> list[tuple[int, int, int]]:
    """
    Re-derive vote counters from the votes table.

    Returns ``(suggestion_id, stored, live)`` for every counter that was wrong.
    With neither filter given, every suggestion is checked.
    """
    from app.feedback.modules.voting.models import Vote

    live = (
        select(func.count(Vote.id))
        .where(Vote.suggestion_id == Suggestion.id)
        .correlate(Suggestion)
        .scalar_subquery()
    )

    filters = []
    if suggestion_id is not None:
        filters.append(Suggestion.id == suggestion_id)
    if board_id is not None:
        filters.append(Suggestion.board_id == board_id)

    drifted = [
        (row.id, row.vote_count, row.live)
        for row in s.execute(
            select(Suggestion.id, Suggestion.vote_count, live.label("live"))
            .where(*filters)
            .where(Suggestion.vote_count != live)
            .order_by(Suggestion.id)
        )
    ]

    if drifted and not dry_run:
        s.execute(
            update(Suggestion)
            .where(*filters)
            .where(Suggestion.vote_count != live)
            .values(vote_count=live)
            .execution_options(synchronize_session=False)
        )
        for sid, _stored, _live in drifted:
            cached = s.identity_map.get(s.identity_key(Suggestion, sid))
            if cached is not None:
                s.expire(cached, ["vote_count"])

    for sid, stored, actual in drifted:
        logger.info("Vote counter drift suggestion=%s stored=%s live=%s dry_run=%s", sid, stored, actual, dry_run)
    return drifted


# ---------- Lifecycle ----------
def validate_suggestion_payload(payload: dict, allowed_categories: list[str]) -> list[str]:
    """Validate suggestion submission payload. Returns list of errors."""
    errors = []
    title = (payload.get("title") or "").strip()
    description = (payload.get("description") or "").strip()
    category = (payload.get("category") or "").strip()

    if not title:
        errors.append("Title is required.")
    elif len(title) > TITLE_MAX:
        errors.append(f"Title must not exceed {TITLE_MAX} characters.")
    if not description:
        errors.append("Description is required.")
    elif len(description) > DESCRIPTION_MAX:
        errors.append(f"Description must not exceed {DESCRIPTION_MAX} characters.")
    if category and category.lower() not in {c.lower() for c in allowed_categories}:
        errors.append(f"Invalid category. Must be one of: {', '.join(allowed_categories)}")
    return errors


def create_suggestion(s: "Session", board: "Board", identity: Identity, payload: dict) -> Suggestion:
    """Create a suggestion on ``board``. Caller has already checked can_submit."""
    from app.feedback.modules.boards.service import effective_categories

    allowed = [c["name"] for c in effective_categories(board)]
    errors = validate_suggestion_payload(payload, allowed)
    if errors:
        raise ValidationError(errors)

    category = (payload.get("category") or "").strip().lower() or None
    now = datetime.utcnow()
    suggestion = Suggestion(
        board_id=board.id,
        author_user_id=identity.account_id,
        author_session_id=identity.session_id,
        title=(payload.get("title") or "").strip(),
        description=(payload.get("description") or "").strip(),
        category=category,
        status="pending",
        vote_count=0,
        created_at=now,
        updated_at=now,
    )
    s.add(suggestion)
    s.flush()
    logger.info("Suggestion created id=%s board=%s kind=%s", suggestion.id, board.id, identity.kind)
    return suggestion


def update_status(
    s: "Session",
    suggestion: Suggestion,
    status: str,
    *,
    actor: User,
    reason: str | None = None,
) -> Suggestion:
    """Move a suggestion through the owner's triage workflow."""
    status = (status or "").strip().lower()
    if status not in SUGGESTION_STATUSES:
        raise ValidationError([f"Invalid status. Must be one of: {', '.join(SUGGESTION_STATUSES)}"])

    old_status = suggestion.status
    if status == old_status:
        return suggestion

    suggestion.status = status
    suggestion.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=actor,
        action="suggestion.status",
        entity_type="Suggestion",
        entity_id=suggestion.id,
        reason=reason,
        metadata={"board_id": suggestion.board_id, "old": old_status, "new": status},
    )
    return suggestion


def delete_suggestions_cascade(s: "Session", suggestion_ids: list[int]) -> dict[str, int]:
    """
    Ordered, idempotent cascade for a set of suggestions.
    Votes go first so no vote can outlive its suggestion.
    """
    from app.feedback.modules.roadmap.models import RoadmapItem
    from app.feedback.modules.voting.service import delete_votes_for_suggestions

    counts = {"votes": 0, "roadmap_links": 0, "comments": 0, "suggestions": 0}
    if not suggestion_ids:
        return counts

    counts["votes"] = delete_votes_for_suggestions(s, suggestion_ids)
    counts["roadmap_links"] = s.execute(
        update(RoadmapItem)
        .where(RoadmapItem.suggestion_id.in_(suggestion_ids))
        .values(suggestion_id=None)
    ).rowcount
    counts["comments"] = s.execute(
        delete(SuggestionComment).where(SuggestionComment.suggestion_id.in_(suggestion_ids))
    ).rowcount
    counts["suggestions"] = s.execute(
        delete(Suggestion).where(Suggestion.id.in_(suggestion_ids))
    ).rowcount
    return counts


def delete_suggestion(s: "Session", suggestion_id: int, *, actor: User | None) -> bool:
    """Delete one suggestion and everything hanging off it. Returns False if it was already gone."""
    counts = delete_suggestions_cascade(s, [suggestion_id])
    if counts["suggestions"] == 0:
        logger.info("Suggestion delete no-op id=%s (already absent) counts=%s", suggestion_id, counts)
        return False

    record_event(
        s,
        actor=actor,
        action="suggestion.delete",
        entity_type="Suggestion",
        entity_id=suggestion_id,
        metadata=counts,
    )
    logger.info("Suggestion deleted id=%s counts=%s", suggestion_id, counts)
    return True


# ---------- Comments ----------
def add_comment(s: "Session", suggestion: Suggestion, identity: Identity, text: str) -> SuggestionComment:
    """Comment on a suggestion. Account identities only; caller has checked can_view."""
    if not identity.is_account:
        raise Forbidden("Sign in to comment.")
    text = (text or "").strip()
    if not text:
        raise ValidationError(["Comment text is required."])
    if len(text) > COMMENT_MAX:
        raise ValidationError([f"Comment text must not exceed {COMMENT_MAX} characters."])

    comment = SuggestionComment(
        suggestion_id=suggestion.id,
        user_id=identity.account_id,
        text=text,
        created_at=datetime.utcnow(),
    )
    s.add(comment)
    s.flush()
    return comment
