from __future__ import annotations

from flask import Blueprint, render_template

from app.feedback.access import current_identity
from app.feedback.db import db_session
from app.feedback.errors import Forbidden
from app.feedback.modules.boards import policy
from app.feedback.modules.boards.models import Board
from app.feedback.modules.boards.service import get_board
from app.feedback.modules.roadmap.service import get_item, group_by_status, list_items

bp = Blueprint("roadmap", __name__)


def _roadmap_board(board_id: int) -> Board:
    board = get_board(db_session(), board_id)
    if not board.roadmap_enabled:
        raise Forbidden("Public roadmap is not enabled for this board.")
    policy.require_view(current_identity(), board)
    return board


@bp.get("/<int:board_id>/roadmap")
def roadmap(board_id: int):
    board = _roadmap_board(board_id)
    items = list_items(db_session(), board.id)
    return render_template(
        "roadmap/list.html",
        board=board,
        grouped=group_by_status(items),
        is_owner=policy.is_owner(current_identity(), board),
    )


@bp.get("/<int:board_id>/roadmap/<int:item_id>")
def roadmap_item(board_id: int, item_id: int):
    board = _roadmap_board(board_id)
    item = get_item(db_session(), board.id, item_id)
    return render_template(
        "roadmap/detail.html",
        board=board,
        item=item,
        is_owner=policy.is_owner(current_identity(), board),
    )
