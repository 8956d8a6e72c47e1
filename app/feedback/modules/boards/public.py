"""
Public board pages: browse, submit, vote, comment.

Every handler resolves the board first and runs it through the visibility
policy before reading suggestions. Policy failures raise Forbidden and are
rendered by the app-level error handler (JSON for API callers).
"""
from __future__ import annotations

from flask import Blueprint, current_app, flash, jsonify, redirect, render_template, request, send_file, url_for

from app.feedback.access import current_identity, wants_json
from app.feedback.constants import RANK_MODES
from app.feedback.db import db_session, translate_store_errors
from app.feedback.errors import NotFound, ValidationError
from app.feedback.modules.boards import policy
from app.feedback.modules.boards.service import effective_categories, get_board
from app.feedback.modules.ranking.service import rank
from app.feedback.modules.suggestions.service import add_comment, create_suggestion, get_suggestion
from app.feedback.modules.voting.service import has_voted, toggle_vote
from app.feedback.storage import StorageError, storage_from_config

bp = Blueprint("boards", __name__)

DEFAULT_SORT = "top"


def _sort_arg() -> str:
    mode = (request.args.get("sort") or DEFAULT_SORT).strip().lower()
    if mode not in RANK_MODES:
        raise ValidationError([f"Unknown sort mode {mode!r}. Must be one of: {', '.join(RANK_MODES)}"])
    return mode


def _ranked(board_id: int, mode: str):
    return rank(
        db_session(),
        board_id,
        mode,
        current_identity(),
        window_days=int(current_app.config.get("TRENDING_WINDOW_DAYS") or 14),
        status=(request.args.get("status") or "").strip() or None,
        category=(request.args.get("category") or "").strip() or None,
    )


@bp.get("/<int:board_id>")
def board_detail(board_id: int):
    s = db_session()
    identity = current_identity()
    board = get_board(s, board_id)
    policy.require_view(identity, board)

    mode = _sort_arg()
    return render_template(
        "boards/detail.html",
        board=board,
        ranked=_ranked(board.id, mode),
        sort=mode,
        sort_modes=RANK_MODES,
        categories=effective_categories(board),
        is_owner=policy.is_owner(identity, board),
        can_vote=policy.can_vote(identity, board),
        can_submit=policy.can_submit(identity, board),
    )


@bp.get("/<int:board_id>/suggestions.json")
def suggestions_json(board_id: int):
    s = db_session()
    board = get_board(s, board_id)
    policy.require_view(current_identity(), board)
    mode = _sort_arg()
    return jsonify([r.to_dict() for r in _ranked(board.id, mode)])


@bp.post("/<int:board_id>/suggestions")
def submit_suggestion(board_id: int):
    s = db_session()
    identity = current_identity()
    board = get_board(s, board_id)
    policy.require_submit(identity, board)

    payload = request.get_json(silent=True) if request.is_json else request.form
    try:
        suggestion = create_suggestion(s, board, identity, payload or {})
    except ValidationError as e:
        s.rollback()
        if wants_json():
            return jsonify({"error": e.message, "errors": e.errors}), 400
        for err in e.errors:
            flash(err, "danger")
        return redirect(url_for("boards.board_detail", board_id=board.id))
    s.commit()

    if wants_json():
        return jsonify({"id": suggestion.id, "voteCount": suggestion.vote_count}), 201
    flash("Suggestion submitted.", "success")
    return redirect(url_for("boards.suggestion_detail", board_id=board.id, suggestion_id=suggestion.id))


@bp.get("/<int:board_id>/suggestions/<int:suggestion_id>")
def suggestion_detail(board_id: int, suggestion_id: int):
    s = db_session()
    identity = current_identity()
    board = get_board(s, board_id)
    policy.require_view(identity, board)
    suggestion = get_suggestion(s, suggestion_id, board_id=board.id)
    return render_template(
        "boards/suggestion.html",
        board=board,
        suggestion=suggestion,
        comments=sorted(suggestion.comments, key=lambda c: (c.created_at, c.id)),
        has_voted=suggestion.id in has_voted(s, identity, [suggestion.id]),
        is_owner=policy.is_owner(identity, board),
        can_vote=policy.can_vote(identity, board),
        can_comment=identity.is_account,
    )


@bp.post("/<int:board_id>/suggestions/<int:suggestion_id>/vote")
def vote(board_id: int, suggestion_id: int):
    s = db_session()
    identity = current_identity()
    with translate_store_errors(s):
        board = get_board(s, board_id)
        policy.require_vote(identity, board)
        # Suggestion must belong to this board; a foreign id is a 404, not a vote.
        get_suggestion(s, suggestion_id, board_id=board.id)
        result = toggle_vote(s, identity, suggestion_id)
        s.commit()
    return jsonify(result.to_dict())


@bp.post("/<int:board_id>/suggestions/<int:suggestion_id>/comments")
def post_comment(board_id: int, suggestion_id: int):
    s = db_session()
    identity = current_identity()
    board = get_board(s, board_id)
    policy.require_view(identity, board)
    suggestion = get_suggestion(s, suggestion_id, board_id=board.id)

    text = (request.get_json(silent=True) or {}).get("text") if request.is_json else request.form.get("text")
    try:
        comment = add_comment(s, suggestion, identity, text or "")
    except ValidationError as e:
        s.rollback()
        if wants_json():
            return jsonify({"error": e.message, "errors": e.errors}), 400
        for err in e.errors:
            flash(err, "danger")
        return redirect(url_for("boards.suggestion_detail", board_id=board.id, suggestion_id=suggestion.id))
    s.commit()

    if wants_json():
        return jsonify({"id": comment.id, "text": comment.text}), 201
    flash("Comment added.", "success")
    return redirect(url_for("boards.suggestion_detail", board_id=board.id, suggestion_id=suggestion.id))


@bp.get("/<int:board_id>/logo")
def board_logo(board_id: int):
    s = db_session()
    board = get_board(s, board_id)
    policy.require_view(current_identity(), board)
    if not board.logo_storage_key:
        raise NotFound("Board has no logo.")
    storage = storage_from_config(current_app.config)
    try:
        fobj = storage.open(board.logo_storage_key)
    except StorageError as e:
        current_app.logger.warning("Logo missing from storage board=%s key=%s: %s", board.id, board.logo_storage_key, e)
        raise NotFound("Board has no logo.") from e
    return send_file(fobj, mimetype=board.logo_content_type or "application/octet-stream", max_age=300)
