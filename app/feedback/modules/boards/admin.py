from __future__ import annotations

from flask import Blueprint, current_app, flash, redirect, render_template, request, url_for
from sqlalchemy.orm import Session

from app.feedback.access import current_identity, current_user, login_required
from app.feedback.audit import record_event
from app.feedback.constants import LOGO_CONTENT_TYPES, SUGGESTION_STATUSES
from app.feedback.db import db_session
from app.feedback.errors import NotFound, ValidationError
from app.feedback.modules.boards import policy
from app.feedback.modules.boards.models import Board
from app.feedback.modules.boards.service import (
    create_board,
    delete_board,
    effective_categories,
    get_board,
    list_owned_boards,
    set_board_logo,
    update_board,
)
from app.feedback.modules.ranking.service import rank
from app.feedback.modules.suggestions.models import Suggestion
from app.feedback.modules.suggestions.service import delete_suggestion, get_suggestion, recount_votes, update_status
from app.feedback.storage import storage_from_config

bp = Blueprint("boards_admin", __name__)


def _owned_board_or_403(s: Session, board_id: int) -> Board:
    board = get_board(s, board_id)
    policy.require_owner(current_identity(), board)
    return board


def _categories_text(board: Board) -> str:
    return "\n".join(f"{c.name}:{c.color}" for c in board.custom_categories)


def _store_logo_if_uploaded(s: Session, board: Board) -> None:
    f = request.files.get("logo")
    if not f or not f.filename:
        return
    content_type = (f.mimetype or "").strip().lower()
    if content_type not in LOGO_CONTENT_TYPES:
        raise ValidationError([f"Logo must be an image ({', '.join(sorted(LOGO_CONTENT_TYPES))})."])
    set_board_logo(
        s,
        board,
        storage=storage_from_config(current_app.config),
        file_bytes=f.read(),
        filename=f.filename,
        content_type=content_type,
        owner=current_user(),
    )


@bp.get("/")
@login_required
def list_boards():
    s = db_session()
    boards = list_owned_boards(s, current_user().id)
    return render_template("manage/list.html", boards=boards)


@bp.get("/new")
@login_required
def new_board_get():
    return render_template("manage/form.html", board=None, form={"is_public": True, "default_categories_enabled": True})


@bp.post("/new")
@login_required
def new_board_post():
    s = db_session()
    u = current_user()
    form = request.form.to_dict()
    for flag in ("is_public", "allow_anonymous_votes", "allow_public_submissions", "roadmap_enabled", "default_categories_enabled"):
        form.setdefault(flag, "")
    try:
        board = create_board(s, form, u)
        _store_logo_if_uploaded(s, board)
    except ValidationError as e:
        s.rollback()
        for err in e.errors:
            flash(err, "danger")
        return render_template("manage/form.html", board=None, form=form), 400
    s.commit()
    flash("Board created.", "success")
    return redirect(url_for("boards_admin.board_manage", board_id=board.id))


@bp.get("/<int:board_id>")
@login_required
def board_manage(board_id: int):
    s = db_session()
    board = _owned_board_or_403(s, board_id)
    ranked = rank(s, board.id, "top", current_identity())
    return render_template(
        "manage/detail.html",
        board=board,
        ranked=ranked,
        statuses=SUGGESTION_STATUSES,
        categories=effective_categories(board),
    )


@bp.get("/<int:board_id>/edit")
@login_required
def edit_board_get(board_id: int):
    s = db_session()
    board = _owned_board_or_403(s, board_id)
    form = {
        "name": board.name,
        "description": board.description,
        "is_public": board.is_public,
        "allow_anonymous_votes": board.allow_anonymous_votes,
        "allow_public_submissions": board.allow_public_submissions,
        "roadmap_enabled": board.roadmap_enabled,
        "default_categories_enabled": board.default_categories_enabled,
        "header_color": board.header_color or "",
        "button_color": board.button_color or "",
        "background_color": board.background_color or "",
        "custom_categories": _categories_text(board),
    }
    return render_template("manage/form.html", board=board, form=form)


@bp.post("/<int:board_id>/edit")
@login_required
def edit_board_post(board_id: int):
    s = db_session()
    board = _owned_board_or_403(s, board_id)
    form = request.form.to_dict()
    try:
        update_board(s, board, form, current_user())
        _store_logo_if_uploaded(s, board)
    except ValidationError as e:
        s.rollback()
        for err in e.errors:
            flash(err, "danger")
        return render_template("manage/form.html", board=board, form=form), 400
    s.commit()
    flash("Board updated.", "success")
    return redirect(url_for("boards_admin.board_manage", board_id=board.id))


@bp.post("/<int:board_id>/delete")
@login_required
def delete_board_post(board_id: int):
    s = db_session()
    board = s.get(Board, board_id)
    if board is None:
        flash("Board already deleted.", "info")
        return redirect(url_for("boards_admin.list_boards"))
    policy.require_owner(current_identity(), board)
    logo_key = board.logo_storage_key
    counts = delete_board(s, board_id, actor=current_user())
    s.commit()
    if logo_key:
        storage_from_config(current_app.config).delete(logo_key)
    flash(f"Board deleted ({counts['suggestions']} suggestions, {counts['votes']} votes removed).", "success")
    return redirect(url_for("boards_admin.list_boards"))


@bp.post("/<int:board_id>/suggestions/<int:suggestion_id>/status")
@login_required
def suggestion_status_post(board_id: int, suggestion_id: int):
    s = db_session()
    board = _owned_board_or_403(s, board_id)
    suggestion = get_suggestion(s, suggestion_id, board_id=board.id)
    try:
        update_status(
            s,
            suggestion,
            request.form.get("status") or "",
            actor=current_user(),
            reason=(request.form.get("reason") or "").strip() or None,
        )
    except ValidationError as e:
        s.rollback()
        for err in e.errors:
            flash(err, "danger")
        return redirect(url_for("boards_admin.board_manage", board_id=board.id))
    s.commit()
    flash("Status updated.", "success")
    return redirect(url_for("boards_admin.board_manage", board_id=board.id))


@bp.post("/<int:board_id>/suggestions/<int:suggestion_id>/delete")
@login_required
def suggestion_delete_post(board_id: int, suggestion_id: int):
    s = db_session()
    board = _owned_board_or_403(s, board_id)
    suggestion = s.get(Suggestion, suggestion_id)
    if suggestion is not None and suggestion.board_id != board.id:
        raise NotFound("Suggestion not found.")
    if suggestion is None or not delete_suggestion(s, suggestion_id, actor=current_user()):
        flash("Suggestion already deleted.", "info")
        return redirect(url_for("boards_admin.board_manage", board_id=board.id))
    s.commit()
    flash("Suggestion deleted.", "success")
    return redirect(url_for("boards_admin.board_manage", board_id=board.id))


@bp.post("/<int:board_id>/recount")
@login_required
def recount_post(board_id: int):
    s = db_session()
    board = _owned_board_or_403(s, board_id)
    drifted = recount_votes(s, board_id=board.id)
    record_event(
        s,
        actor=current_user(),
        action="board.recount",
        entity_type="Board",
        entity_id=board.id,
        metadata={"corrected": [{"suggestion_id": sid, "stored": old, "live": new} for sid, old, new in drifted]},
    )
    s.commit()
    flash(f"Vote counts checked; {len(drifted)} corrected.", "success")
    return redirect(url_for("boards_admin.board_manage", board_id=board.id))
