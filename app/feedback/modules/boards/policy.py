"""
Board visibility policy: who may view, vote on, submit to, or manage a board.

The ``can_*`` functions answer; the ``require_*`` functions raise Forbidden.
Failures are never downgraded to a partial view.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

from app.feedback.errors import Forbidden
from app.feedback.identity import Identity

if TYPE_CHECKING:
    from app.feedback.modules.boards.models import Board


def is_owner(identity: Identity, board: "Board") -> bool:
    return identity.is_account and identity.account_id == board.owner_user_id


def can_view(identity: Identity, board: "Board") -> bool:
    return bool(board.is_public) or is_owner(identity, board)


def can_vote(identity: Identity, board: "Board") -> bool:
    if not can_view(identity, board):
        return False
    if identity.is_anonymous:
        return bool(board.allow_anonymous_votes)
    return True


def can_submit(identity: Identity, board: "Board") -> bool:
    if not can_view(identity, board):
        return False
    if identity.is_anonymous:
        return bool(board.allow_public_submissions)
    return True


def require_view(identity: Identity, board: "Board") -> None:
    if not can_view(identity, board):
        raise Forbidden("This board is private.")


def require_vote(identity: Identity, board: "Board") -> None:
    require_view(identity, board)
    if not can_vote(identity, board):
        raise Forbidden("Sign in to vote on this board.")


def require_submit(identity: Identity, board: "Board") -> None:
    require_view(identity, board)
    if not can_submit(identity, board):
        raise Forbidden("Sign in to submit suggestions to this board.")


def require_owner(identity: Identity, board: "Board") -> None:
    if not is_owner(identity, board):
        raise Forbidden("Only the board owner can do that.")
