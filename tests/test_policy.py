from types import SimpleNamespace

import pytest

from app.feedback.errors import Forbidden
from app.feedback.identity import Identity, resolve_identity
from app.feedback.modules.boards import policy


def _board(**flags):
    base = {
        "owner_user_id": 7,
        "is_public": True,
        "allow_anonymous_votes": True,
        "allow_public_submissions": True,
    }
    base.update(flags)
    return SimpleNamespace(**base)


OWNER = Identity.account(7)
MEMBER = Identity.account(8)
VISITOR = Identity.anonymous("sess-A")


def test_resolve_identity_prefers_active_account():
    user = SimpleNamespace(id=5, is_active=True)
    assert resolve_identity(user, "sess-A") == Identity.account(5)
    assert resolve_identity(SimpleNamespace(id=5, is_active=False), "sess-A") == Identity.anonymous("sess-A")
    assert resolve_identity(None, "sess-A") == Identity.anonymous("sess-A")


def test_identity_rejects_inconsistent_fields():
    with pytest.raises(ValueError):
        Identity(kind="account", account_id=None)
    with pytest.raises(ValueError):
        Identity(kind="anonymous", session_id="")
    with pytest.raises(ValueError):
        Identity(kind="robot", account_id=1)


def test_private_board_visible_to_owner_only():
    board = _board(is_public=False)
    assert policy.can_view(OWNER, board)
    assert not policy.can_view(MEMBER, board)
    assert not policy.can_view(VISITOR, board)
    # Voting and submitting imply viewing.
    assert not policy.can_vote(MEMBER, board)
    assert not policy.can_submit(VISITOR, board)
    with pytest.raises(Forbidden, match="private"):
        policy.require_vote(MEMBER, board)


def test_anonymous_voting_follows_board_flag():
    assert policy.can_vote(VISITOR, _board(allow_anonymous_votes=True))
    closed = _board(allow_anonymous_votes=False)
    assert not policy.can_vote(VISITOR, closed)
    assert policy.can_vote(MEMBER, closed)
    with pytest.raises(Forbidden, match="Sign in to vote"):
        policy.require_vote(VISITOR, closed)


def test_anonymous_submission_follows_board_flag():
    closed = _board(allow_public_submissions=False)
    assert not policy.can_submit(VISITOR, closed)
    assert policy.can_submit(MEMBER, closed)
    with pytest.raises(Forbidden, match="submit"):
        policy.require_submit(VISITOR, closed)


def test_owner_check_requires_matching_account():
    board = _board()
    assert policy.is_owner(OWNER, board)
    assert not policy.is_owner(MEMBER, board)
    assert not policy.is_owner(VISITOR, board)
    policy.require_owner(OWNER, board)
    with pytest.raises(Forbidden):
        policy.require_owner(MEMBER, board)
