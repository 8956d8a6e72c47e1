from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import delete, select
from werkzeug.utils import secure_filename

from app.feedback.audit import record_event
from app.feedback.constants import DEFAULT_CATEGORIES, LOGO_CONTENT_TYPES
from app.feedback.errors import NotFound, ValidationError
from app.feedback.modules.boards.models import Board, BoardCategory

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.feedback.models import User
    from app.feedback.storage import Storage

logger = logging.getLogger(__name__)

_COLOR_RE = re.compile(r"^#[0-9a-fA-F]{3}([0-9a-fA-F]{3})?$")
_FLAG_FIELDS = ("is_public", "allow_anonymous_votes", "allow_public_submissions", "roadmap_enabled", "default_categories_enabled")
_COLOR_FIELDS = ("header_color", "button_color", "background_color")


def get_board(s: "Session", board_id: int) -> Board:
    board = s.get(Board, board_id)
    if board is None:
        raise NotFound("Board not found.")
    return board


def list_public_boards(s: "Session") -> list[Board]:
    return list(s.execute(select(Board).where(Board.is_public.is_(True)).order_by(Board.created_at.desc())).scalars())


def list_owned_boards(s: "Session", owner_user_id: int) -> list[Board]:
    return list(
        s.execute(select(Board).where(Board.owner_user_id == owner_user_id).order_by(Board.created_at.desc())).scalars()
    )


def effective_categories(board: Board) -> list[dict]:
    """
    Defaults (when enabled) followed by the board's custom categories.
    A custom category named like a default replaces that default's colour.
    """
    custom = {c.name.lower(): c.color for c in board.custom_categories}
    out: list[dict] = []
    if board.default_categories_enabled:
        for d in DEFAULT_CATEGORIES:
            out.append({"name": d["name"], "color": custom.pop(d["name"], d["color"])})
    for c in board.custom_categories:
        if c.name.lower() in custom:
            out.append({"name": c.name.lower(), "color": c.color})
    return out


def parse_flag(raw) -> bool:
    """HTML checkboxes post "on"; JSON posts booleans."""
    if isinstance(raw, bool):
        return raw
    return (str(raw or "")).strip().lower() in ("1", "on", "true", "yes")


def parse_custom_categories(raw: str | None) -> tuple[list[dict], list[str]]:
    """
    Parse ``name:#color`` pairs, one per line or comma-separated.
    Returns (categories, errors).
    """
    categories: list[dict] = []
    errors: list[str] = []
    seen: set[str] = set()
    for chunk in re.split(r"[,\n]", raw or ""):
        chunk = chunk.strip()
        if not chunk:
            continue
        name, _, color = chunk.partition(":")
        name = name.strip().lower()
        color = color.strip() or "#6b7280"
        if not name or len(name) > 64:
            errors.append(f"Invalid category name: {chunk!r}")
            continue
        if not _COLOR_RE.match(color):
            errors.append(f"Invalid colour for category {name!r}: {color!r}")
            continue
        if name in seen:
            continue
        seen.add(name)
        categories.append({"name": name, "color": color})
    return categories, errors


def validate_board_payload(payload: dict) -> list[str]:
    """Validate board creation/update payload. Returns list of errors."""
    errors = []
    name = (payload.get("name") or "").strip()
    if not name:
        errors.append("Name is required.")
    elif len(name) > 200:
        errors.append("Name must not exceed 200 characters.")
    if not (payload.get("description") or "").strip():
        errors.append("Description is required.")
    for field in _COLOR_FIELDS:
        value = (payload.get(field) or "").strip()
        if value and not _COLOR_RE.match(value):
            errors.append(f"Invalid colour for {field.replace('_', ' ')}: {value!r}")
    _, cat_errors = parse_custom_categories(payload.get("custom_categories"))
    errors.extend(cat_errors)
    return errors


def _replace_custom_categories(s: "Session", board: Board, categories: list[dict]) -> None:
    s.execute(delete(BoardCategory).where(BoardCategory.board_id == board.id))
    for c in categories:
        s.add(BoardCategory(board_id=board.id, name=c["name"], color=c["color"]))
    s.flush()
    s.expire(board, ["custom_categories"])


def create_board(s: "Session", payload: dict, owner: "User") -> Board:
    """Create a board owned by ``owner``. Flags default to an open, public board."""
    errors = validate_board_payload(payload)
    if errors:
        raise ValidationError(errors)

    now = datetime.utcnow()
    board = Board(
        owner_user_id=owner.id,
        name=(payload.get("name") or "").strip(),
        description=(payload.get("description") or "").strip(),
        created_at=now,
        updated_at=now,
    )
    for field in _FLAG_FIELDS:
        if field in payload:
            setattr(board, field, parse_flag(payload.get(field)))
    for field in _COLOR_FIELDS:
        setattr(board, field, (payload.get(field) or "").strip() or None)
    s.add(board)
    s.flush()

    categories, _ = parse_custom_categories(payload.get("custom_categories"))
    if categories:
        _replace_custom_categories(s, board, categories)

    record_event(
        s,
        actor=owner,
        action="board.create",
        entity_type="Board",
        entity_id=board.id,
        metadata={"name": board.name, "is_public": board.is_public},
    )
    return board


def update_board(s: "Session", board: Board, payload: dict, owner: "User") -> Board:
    """Owner edit: name, description, flags, colours, custom categories. Owner itself never changes."""
    errors = validate_board_payload(payload)
    if errors:
        raise ValidationError(errors)

    changes: dict[str, dict] = {}

    def _set(attr: str, value) -> None:
        if getattr(board, attr) != value:
            changes[attr] = {"old": getattr(board, attr), "new": value}
            setattr(board, attr, value)

    _set("name", (payload.get("name") or "").strip())
    _set("description", (payload.get("description") or "").strip())
    for field in _FLAG_FIELDS:
        _set(field, parse_flag(payload.get(field)))
    for field in _COLOR_FIELDS:
        _set(field, (payload.get(field) or "").strip() or None)

    categories, _ = parse_custom_categories(payload.get("custom_categories"))
    old_categories = [{"name": c.name, "color": c.color} for c in board.custom_categories]
    if categories != old_categories:
        changes["custom_categories"] = {"old": old_categories, "new": categories}
        _replace_custom_categories(s, board, categories)

    board.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=owner,
        action="board.edit",
        entity_type="Board",
        entity_id=board.id,
        metadata={"name": board.name, "changes": changes},
    )
    return board


def build_logo_storage_key(board_id: int, filename: str) -> str:
    safe_filename = secure_filename(filename) or "logo.bin"
    return f"boards/{board_id}/logo/{datetime.utcnow().strftime('%Y%m%d%H%M%S')}-{safe_filename}"


def set_board_logo(
    s: "Session",
    board: Board,
    *,
    storage: "Storage",
    file_bytes: bytes,
    filename: str,
    content_type: str,
    owner: "User",
) -> str:
    """Store a new logo and point the board at it. The previous object is removed."""
    if content_type not in LOGO_CONTENT_TYPES:
        raise ValidationError([f"Logo must be an image ({', '.join(sorted(LOGO_CONTENT_TYPES))})."])
    if not file_bytes:
        raise ValidationError(["Logo file is empty."])

    key = build_logo_storage_key(board.id, filename)
    storage.put_bytes(key, file_bytes, content_type=content_type)
    old_key = board.logo_storage_key
    board.logo_storage_key = key
    board.logo_content_type = content_type
    board.updated_at = datetime.utcnow()
    if old_key and old_key != key:
        storage.delete(old_key)

    record_event(
        s,
        actor=owner,
        action="board.logo",
        entity_type="Board",
        entity_id=board.id,
        metadata={"storage_key": key, "size_bytes": len(file_bytes)},
    )
    return key


def delete_board(s: "Session", board_id: int, *, actor: "User | None") -> dict[str, int]:
    """
    Ordered, idempotent cascade: suggestions (and their votes), roadmap items,
    custom categories, then the board. Deleting an absent board is a no-op.
    """
    from app.feedback.modules.roadmap.models import RoadmapItem
    from app.feedback.modules.suggestions.models import Suggestion
    from app.feedback.modules.suggestions.service import delete_suggestions_cascade

    suggestion_ids = list(s.execute(select(Suggestion.id).where(Suggestion.board_id == board_id)).scalars())
    counts = delete_suggestions_cascade(s, suggestion_ids)
    counts["roadmap_items"] = s.execute(delete(RoadmapItem).where(RoadmapItem.board_id == board_id)).rowcount
    counts["categories"] = s.execute(delete(BoardCategory).where(BoardCategory.board_id == board_id)).rowcount
    counts["boards"] = s.execute(delete(Board).where(Board.id == board_id)).rowcount

    if counts["boards"]:
        record_event(s, actor=actor, action="board.delete", entity_type="Board", entity_id=board_id, metadata=counts)
        logger.info("Board deleted id=%s counts=%s", board_id, counts)
    else:
        logger.info("Board delete no-op id=%s (already absent)", board_id)
    return counts
