import random
from datetime import datetime, timedelta

import pytest
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from werkzeug.security import generate_password_hash

from app.feedback import create_app
from app.feedback.db import session_scope
from app.feedback.errors import Conflict, NotFound
from app.feedback.identity import Identity
from app.feedback.models import Base, User
from app.feedback.modules.boards.models import Board
from app.feedback.modules.suggestions.models import Suggestion
from app.feedback.modules.suggestions.service import current_count, recount_votes
from app.feedback.modules.voting import service as voting
from app.feedback.modules.voting.models import Vote
from app.feedback.modules.voting.service import has_voted, live_vote_count, toggle_vote


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        owner = User(id=1, username="owner", email="owner@example.com", password_hash=generate_password_hash("pw1234"))
        voter = User(id=42, username="voter", email="voter@example.com", password_hash=generate_password_hash("pw1234"))
        s.add_all([owner, voter])
        s.flush()
        board = Board(id=1, owner_user_id=owner.id, name="Board", description="d", allow_anonymous_votes=True)
        s.add(board)
        s.flush()
        s.add_all(
            [
                Suggestion(id=1, board_id=board.id, title="Dark mode", description="please"),
                Suggestion(id=2, board_id=board.id, title="CSV export", description="please"),
            ]
        )
    return app


def test_worked_example_session_then_account_then_session_off(app):
    with session_scope(app) as s:
        r1 = toggle_vote(s, Identity.anonymous("sess-A"), 1)
        assert (r1.voted, r1.vote_count) == (True, 1)

        r2 = toggle_vote(s, Identity.account(42), 1)
        assert (r2.voted, r2.vote_count) == (True, 2)

        r3 = toggle_vote(s, Identity.anonymous("sess-A"), 1)
        assert (r3.voted, r3.vote_count) == (False, 1)
        assert r3.to_dict() == {"voted": False, "voteCount": 1}

    with session_scope(app) as s:
        assert current_count(s, 1) == 1
        rows = s.execute(select(Vote)).scalars().all()
        assert [(v.voter_kind, v.user_id, v.session_id) for v in rows] == [("account", 42, None)]


def test_toggle_twice_restores_count_and_vote_state(app):
    ident = Identity.account(42)
    with session_scope(app) as s:
        before = current_count(s, 2)
        assert toggle_vote(s, ident, 2).voted is True
        result = toggle_vote(s, ident, 2)
        assert result.voted is False
        assert result.vote_count == before
        assert 2 not in has_voted(s, ident, [2])


def test_account_and_session_namespaces_are_independent(app):
    with session_scope(app) as s:
        toggle_vote(s, Identity.account(42), 1)
        toggle_vote(s, Identity.anonymous("42"), 1)
        assert current_count(s, 1) == 2
        assert has_voted(s, Identity.account(42), [1, 2]) == {1}
        assert has_voted(s, Identity.anonymous("42"), [1, 2]) == {1}
        assert has_voted(s, Identity.anonymous("someone-else"), [1, 2]) == set()


def test_duplicate_insert_is_rejected_by_unique_index(app):
    ident = Identity.anonymous("sess-A")
    with session_scope(app) as s:
        toggle_vote(s, ident, 1)
        with pytest.raises(Conflict):
            voting._insert_vote(s, ident, 1, datetime.utcnow())
        # The SAVEPOINT rollback leaves the first vote and the counter intact.
        assert live_vote_count(s, 1) == 1
        assert current_count(s, 1) == 1


def test_lost_race_reports_current_state_without_double_increment(app, monkeypatch):
    ident = Identity.account(42)
    with session_scope(app) as s:
        toggle_vote(s, ident, 1)

    # Simulate the second of two concurrent requests: its existence check ran
    # before the first request's insert was visible.
    real_find_vote = voting.find_vote
    calls = {"n": 0}

    def stale_find_vote(s, identity, suggestion_id):
        calls["n"] += 1
        if calls["n"] == 1:
            return None
        return real_find_vote(s, identity, suggestion_id)

    monkeypatch.setattr(voting, "find_vote", stale_find_vote)

    with session_scope(app) as s:
        result = toggle_vote(s, ident, 1)
        assert result.voted is True
        assert result.vote_count == 1

    with session_scope(app) as s:
        assert current_count(s, 1) == 1
        assert live_vote_count(s, 1) == 1


def test_unvote_when_row_already_gone_applies_no_delta(app, monkeypatch):
    ident = Identity.account(42)
    with session_scope(app) as s:
        toggle_vote(s, ident, 1)
        toggle_vote(s, Identity.anonymous("sess-B"), 1)

    # A concurrent un-vote removed the row between our check and our delete.
    monkeypatch.setattr(voting, "_delete_vote", lambda s, identity, suggestion_id: 0)
    with session_scope(app) as s:
        result = toggle_vote(s, ident, 1)
        assert result.voted is False
        assert result.vote_count == 2


def test_counter_never_goes_below_zero_when_already_wrong(app):
    with session_scope(app) as s:
        toggle_vote(s, Identity.anonymous("sess-A"), 1)
        toggle_vote(s, Identity.anonymous("sess-B"), 1)

    with session_scope(app) as s:
        s.execute(update(Suggestion).where(Suggestion.id == 1).values(vote_count=0))

    with session_scope(app) as s:
        result = toggle_vote(s, Identity.anonymous("sess-A"), 1)
        assert result == voting.ToggleResult(voted=False, vote_count=0)

    with session_scope(app) as s:
        assert current_count(s, 1) == 0
        assert recount_votes(s, suggestion_id=1, dry_run=True) == [(1, 0, 1)]


def test_user_with_votes_cannot_be_deleted_behind_the_ledger(app):
    with session_scope(app) as s:
        toggle_vote(s, Identity.account(42), 1)

    with pytest.raises(IntegrityError):
        with session_scope(app) as s:
            s.execute(delete(User).where(User.id == 42))

    with session_scope(app) as s:
        assert live_vote_count(s, 1) == current_count(s, 1) == 1


def test_counter_matches_ledger_after_random_toggles(app):
    identities = [Identity.account(1), Identity.account(42)] + [Identity.anonymous(f"sess-{i}") for i in range(6)]
    rng = random.Random(1234)
    with session_scope(app) as s:
        for _ in range(200):
            toggle_vote(s, rng.choice(identities), rng.choice([1, 2]))

    with session_scope(app) as s:
        for sid in (1, 2):
            assert current_count(s, sid) == live_vote_count(s, sid)
            assert current_count(s, sid) >= 0
        dupes = s.execute(
            select(Vote.voter_kind, Vote.user_id, Vote.session_id, Vote.suggestion_id, func.count(Vote.id))
            .group_by(Vote.voter_kind, Vote.user_id, Vote.session_id, Vote.suggestion_id)
            .having(func.count(Vote.id) > 1)
        ).all()
        assert dupes == []
        assert recount_votes(s) == []


def test_toggle_on_missing_suggestion_raises_not_found(app):
    with session_scope(app) as s:
        with pytest.raises(NotFound):
            toggle_vote(s, Identity.account(42), 999)
        assert s.execute(select(func.count(Vote.id))).scalar_one() == 0


def test_has_voted_uses_single_lookup_for_many_ids(app):
    ident = Identity.anonymous("sess-A")
    with session_scope(app) as s:
        toggle_vote(s, ident, 2)
        assert has_voted(s, ident, []) == set()
        assert has_voted(s, ident, [1, 2, 3]) == {2}


def test_vote_timestamp_defaults_to_now_and_accepts_override(app):
    past = datetime.utcnow() - timedelta(days=30)
    with session_scope(app) as s:
        toggle_vote(s, Identity.account(42), 1, now=past)
        vote = s.execute(select(Vote)).scalar_one()
        assert vote.created_at == past
