"""
Roadmap items.

A roadmap item may point at the suggestion it came from. When that link is
made (on promote, create or edit) the suggestion's current vote count is
copied into ``vote_snapshot``. Later votes do not move the snapshot.
"""
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import delete, select

from app.feedback.audit import record_event
from app.feedback.constants import (
    ROADMAP_DESCRIPTION_MAX,
    ROADMAP_PRIORITIES,
    ROADMAP_STATUSES,
    ROADMAP_TYPES,
    TITLE_MAX,
)
from app.feedback.errors import NotFound, ValidationError
from app.feedback.modules.roadmap.models import RoadmapItem
from app.feedback.modules.suggestions.service import current_count, get_suggestion

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.feedback.models import User
    from app.feedback.modules.boards.models import Board
    from app.feedback.modules.suggestions.models import Suggestion

logger = logging.getLogger(__name__)


def parse_release_date(raw: str | None) -> date | None:
    raw = (raw or "").strip()
    if not raw:
        return None
    try:
        return datetime.strptime(raw, "%Y-%m-%d").date()
    except ValueError:
        raise ValidationError([f"Invalid estimated release date {raw!r}; use YYYY-MM-DD."]) from None


def validate_roadmap_payload(payload: dict) -> list[str]:
    """Validate roadmap item create/edit payload. Returns list of errors."""
    errors = []
    title = (payload.get("title") or "").strip()
    description = (payload.get("description") or "").strip()
    status = (payload.get("status") or "planned").strip().lower()
    priority = (payload.get("priority") or "").strip().lower()
    item_type = (payload.get("item_type") or "").strip().lower()

    if not title:
        errors.append("Title is required.")
    elif len(title) > TITLE_MAX:
        errors.append(f"Title must not exceed {TITLE_MAX} characters.")
    if not description:
        errors.append("Description is required.")
    elif len(description) > ROADMAP_DESCRIPTION_MAX:
        errors.append(f"Description must not exceed {ROADMAP_DESCRIPTION_MAX} characters.")
    if status not in ROADMAP_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(ROADMAP_STATUSES)}")
    if priority and priority not in ROADMAP_PRIORITIES:
        errors.append(f"Invalid priority. Must be one of: {', '.join(ROADMAP_PRIORITIES)}")
    if item_type and item_type not in ROADMAP_TYPES:
        errors.append(f"Invalid type. Must be one of: {', '.join(ROADMAP_TYPES)}")
    return errors


def list_items(s: "Session", board_id: int) -> list[RoadmapItem]:
    """Soonest release first (undated last), newest first within a date."""
    return list(
        s.execute(
            select(RoadmapItem)
            .where(RoadmapItem.board_id == board_id)
            .order_by(
                RoadmapItem.estimated_release_date.is_(None),
                RoadmapItem.estimated_release_date.asc(),
                RoadmapItem.created_at.desc(),
                RoadmapItem.id.desc(),
            )
        ).scalars()
    )


def group_by_status(items: list[RoadmapItem]) -> dict[str, list[RoadmapItem]]:
    grouped: dict[str, list[RoadmapItem]] = {status: [] for status in ROADMAP_STATUSES}
    for item in items:
        grouped.setdefault(item.status, []).append(item)
    return grouped


def get_item(s: "Session", board_id: int, item_id: int) -> RoadmapItem:
    item = s.get(RoadmapItem, item_id)
    if item is None or item.board_id != board_id:
        raise NotFound("Roadmap item not found.")
    return item


def _link_suggestion(s: "Session", item: RoadmapItem, board_id: int, raw_suggestion_id) -> None:
    """Point the item at a suggestion on the same board and freeze its vote count."""
    raw = str(raw_suggestion_id or "").strip()
    if not raw:
        item.suggestion_id = None
        item.vote_snapshot = None
        return
    try:
        suggestion_id = int(raw)
    except ValueError:
        raise ValidationError([f"Invalid suggestion id {raw!r}."]) from None
    if suggestion_id == item.suggestion_id:
        return
    get_suggestion(s, suggestion_id, board_id=board_id)
    item.suggestion_id = suggestion_id
    item.vote_snapshot = current_count(s, suggestion_id)


def _apply_fields(item: RoadmapItem, payload: dict) -> None:
    item.title = (payload.get("title") or "").strip()
    item.description = (payload.get("description") or "").strip()
    item.status = (payload.get("status") or "planned").strip().lower()
    item.priority = (payload.get("priority") or "").strip().lower() or None
    item.item_type = (payload.get("item_type") or "").strip().lower() or None
    item.estimated_release_date = parse_release_date(payload.get("estimated_release_date"))


def create_item(s: "Session", board: "Board", payload: dict, owner: "User") -> RoadmapItem:
    errors = validate_roadmap_payload(payload)
    if errors:
        raise ValidationError(errors)

    now = datetime.utcnow()
    item = RoadmapItem(board_id=board.id, created_at=now, updated_at=now)
    _apply_fields(item, payload)
    _link_suggestion(s, item, board.id, payload.get("suggestion_id"))
    s.add(item)
    s.flush()

    record_event(
        s,
        actor=owner,
        action="roadmap.create",
        entity_type="RoadmapItem",
        entity_id=item.id,
        metadata={"board_id": board.id, "title": item.title, "suggestion_id": item.suggestion_id},
    )
    return item


def update_item(s: "Session", item: RoadmapItem, payload: dict, owner: "User") -> RoadmapItem:
    errors = validate_roadmap_payload(payload)
    if errors:
        raise ValidationError(errors)

    before = {"title": item.title, "status": item.status, "suggestion_id": item.suggestion_id}
    _apply_fields(item, payload)
    _link_suggestion(s, item, item.board_id, payload.get("suggestion_id"))
    item.updated_at = datetime.utcnow()

    record_event(
        s,
        actor=owner,
        action="roadmap.edit",
        entity_type="RoadmapItem",
        entity_id=item.id,
        metadata={
            "board_id": item.board_id,
            "before": before,
            "after": {"title": item.title, "status": item.status, "suggestion_id": item.suggestion_id},
        },
    )
    return item


def delete_item(s: "Session", board_id: int, item_id: int, *, owner: "User") -> bool:
    """Returns False if the item was already gone."""
    removed = s.execute(
        delete(RoadmapItem).where(RoadmapItem.id == item_id, RoadmapItem.board_id == board_id)
    ).rowcount
    if not removed:
        return False
    record_event(
        s,
        actor=owner,
        action="roadmap.delete",
        entity_type="RoadmapItem",
        entity_id=item_id,
        metadata={"board_id": board_id},
    )
    return True


def promote_suggestion(s: "Session", board: "Board", suggestion: "Suggestion", owner: "User") -> RoadmapItem:
    """
    Put a suggestion on the roadmap as a planned item.
    The suggestion moves to in-progress if it was still pending.
    """
    from app.feedback.modules.suggestions.service import update_status

    if suggestion.board_id != board.id:
        raise NotFound("Suggestion not found.")

    item = create_item(
        s,
        board,
        {
            "title": suggestion.title,
            "description": suggestion.description[:ROADMAP_DESCRIPTION_MAX],
            "status": "planned",
            "item_type": "bug-fix" if suggestion.category == "bug" else "feature",
            "suggestion_id": suggestion.id,
        },
        owner,
    )
    if suggestion.status == "pending":
        update_status(s, suggestion, "in-progress", actor=owner, reason="Promoted to roadmap")
    logger.info("Suggestion promoted id=%s item=%s snapshot=%s", suggestion.id, item.id, item.vote_snapshot)
    return item
