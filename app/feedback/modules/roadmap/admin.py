from __future__ import annotations

from flask import Blueprint, flash, redirect, render_template, request, url_for
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.feedback.access import current_identity, current_user, login_required
from app.feedback.constants import ROADMAP_PRIORITIES, ROADMAP_STATUSES, ROADMAP_TYPES
from app.feedback.db import db_session
from app.feedback.errors import ValidationError
from app.feedback.modules.boards import policy
from app.feedback.modules.boards.models import Board
from app.feedback.modules.boards.service import get_board
from app.feedback.modules.roadmap.service import (
    create_item,
    delete_item,
    get_item,
    list_items,
    promote_suggestion,
    update_item,
)
from app.feedback.modules.suggestions.models import Suggestion
from app.feedback.modules.suggestions.service import get_suggestion

bp = Blueprint("roadmap_admin", __name__)


def _owned_board_or_403(s: Session, board_id: int) -> Board:
    board = get_board(s, board_id)
    policy.require_owner(current_identity(), board)
    return board


def _form_context(s: Session, board: Board) -> dict:
    suggestions = s.execute(
        select(Suggestion)
        .where(Suggestion.board_id == board.id)
        .order_by(Suggestion.vote_count.desc(), Suggestion.created_at.desc())
    ).scalars().all()
    return {
        "board": board,
        "suggestions": suggestions,
        "statuses": ROADMAP_STATUSES,
        "priorities": ROADMAP_PRIORITIES,
        "item_types": ROADMAP_TYPES,
    }


@bp.get("/<int:board_id>/roadmap")
@login_required
def roadmap_manage(board_id: int):
    s = db_session()
    board = _owned_board_or_403(s, board_id)
    return render_template("manage/roadmap.html", board=board, items=list_items(s, board.id))


@bp.get("/<int:board_id>/roadmap/new")
@login_required
def new_item_get(board_id: int):
    s = db_session()
    board = _owned_board_or_403(s, board_id)
    return render_template("manage/roadmap_form.html", item=None, form={}, **_form_context(s, board))


@bp.post("/<int:board_id>/roadmap/new")
@login_required
def new_item_post(board_id: int):
    s = db_session()
    board = _owned_board_or_403(s, board_id)
    form = request.form.to_dict()
    try:
        create_item(s, board, form, current_user())
    except ValidationError as e:
        s.rollback()
        for err in e.errors:
            flash(err, "danger")
        return render_template("manage/roadmap_form.html", item=None, form=form, **_form_context(s, board)), 400
    s.commit()
    flash("Roadmap item created.", "success")
    return redirect(url_for("roadmap_admin.roadmap_manage", board_id=board.id))


@bp.get("/<int:board_id>/roadmap/<int:item_id>/edit")
@login_required
def edit_item_get(board_id: int, item_id: int):
    s = db_session()
    board = _owned_board_or_403(s, board_id)
    item = get_item(s, board.id, item_id)
    form = {
        "title": item.title,
        "description": item.description,
        "status": item.status,
        "priority": item.priority or "",
        "item_type": item.item_type or "",
        "suggestion_id": str(item.suggestion_id or ""),
        "estimated_release_date": item.estimated_release_date.isoformat() if item.estimated_release_date else "",
    }
    return render_template("manage/roadmap_form.html", item=item, form=form, **_form_context(s, board))


@bp.post("/<int:board_id>/roadmap/<int:item_id>/edit")
@login_required
def edit_item_post(board_id: int, item_id: int):
    s = db_session()
    board = _owned_board_or_403(s, board_id)
    item = get_item(s, board.id, item_id)
    form = request.form.to_dict()
    try:
        update_item(s, item, form, current_user())
    except ValidationError as e:
        s.rollback()
        for err in e.errors:
            flash(err, "danger")
        return render_template("manage/roadmap_form.html", item=item, form=form, **_form_context(s, board)), 400
    s.commit()
    flash("Roadmap item updated.", "success")
    return redirect(url_for("roadmap_admin.roadmap_manage", board_id=board.id))


@bp.post("/<int:board_id>/roadmap/<int:item_id>/delete")
@login_required
def delete_item_post(board_id: int, item_id: int):
    s = db_session()
    board = _owned_board_or_403(s, board_id)
    if delete_item(s, board.id, item_id, owner=current_user()):
        s.commit()
        flash("Roadmap item deleted.", "success")
    else:
        flash("Roadmap item already deleted.", "info")
    return redirect(url_for("roadmap_admin.roadmap_manage", board_id=board.id))


@bp.post("/<int:board_id>/suggestions/<int:suggestion_id>/promote")
@login_required
def promote_post(board_id: int, suggestion_id: int):
    s = db_session()
    board = _owned_board_or_403(s, board_id)
    suggestion = get_suggestion(s, suggestion_id, board_id=board.id)
    item = promote_suggestion(s, board, suggestion, current_user())
    s.commit()
    flash(f"Added to roadmap with {item.vote_snapshot} votes.", "success")
    return redirect(url_for("roadmap_admin.roadmap_manage", board_id=board.id))
