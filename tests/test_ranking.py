from datetime import datetime, timedelta

import pytest
from werkzeug.security import generate_password_hash

from app.feedback import create_app
from app.feedback.db import session_scope
from app.feedback.identity import Identity
from app.feedback.models import Base, User
from app.feedback.modules.boards.models import Board
from app.feedback.modules.ranking.service import rank
from app.feedback.modules.suggestions.models import Suggestion
from app.feedback.modules.voting.service import toggle_vote

NOW = datetime(2026, 6, 15, 12, 0, 0)


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        s.add(User(id=1, username="owner", email="owner@example.com", password_hash=generate_password_hash("pw1234")))
        s.flush()
        s.add_all(
            [
                Board(id=1, owner_user_id=1, name="Board", description="d"),
                Board(id=2, owner_user_id=1, name="Other", description="d"),
            ]
        )
    return app


def _suggestion(s, sid: int, *, created_at: datetime, board_id: int = 1, **kw) -> Suggestion:
    sg = Suggestion(id=sid, board_id=board_id, title=f"S{sid}", description="x", created_at=created_at, **kw)
    s.add(sg)
    s.flush()
    return sg


def _vote_n(s, sid: int, n: int, *, when: datetime, prefix: str) -> None:
    for i in range(n):
        toggle_vote(s, Identity.anonymous(f"{prefix}-{sid}-{i}"), sid, now=when)


def test_new_orders_by_created_desc_then_id_desc(app):
    with session_scope(app) as s:
        _suggestion(s, 1, created_at=NOW - timedelta(days=3))
        _suggestion(s, 2, created_at=NOW - timedelta(days=1))
        _suggestion(s, 3, created_at=NOW - timedelta(days=1))
        _suggestion(s, 4, created_at=NOW, board_id=2)
        ranked = rank(s, 1, "new", Identity.anonymous("viewer"))
        assert [r.suggestion.id for r in ranked] == [3, 2, 1]


def test_top_is_non_increasing_with_created_tiebreak(app):
    with session_scope(app) as s:
        _suggestion(s, 1, created_at=NOW - timedelta(days=5))
        _suggestion(s, 2, created_at=NOW - timedelta(days=4))
        _suggestion(s, 3, created_at=NOW - timedelta(days=3))
        _vote_n(s, 1, 2, when=NOW, prefix="a")
        _vote_n(s, 2, 2, when=NOW, prefix="a")
        _vote_n(s, 3, 4, when=NOW, prefix="a")

        ranked = rank(s, 1, "top", Identity.anonymous("viewer"))
        counts = [r.suggestion.vote_count for r in ranked]
        assert counts == sorted(counts, reverse=True)
        # 2 and 1 tie on votes; newer first.
        assert [r.suggestion.id for r in ranked] == [3, 2, 1]


def test_trending_counts_only_votes_inside_window(app):
    with session_scope(app) as s:
        # A: 3 votes in the last two weeks. B: 5 votes, all older than the window.
        _suggestion(s, 1, created_at=NOW - timedelta(days=60))
        _suggestion(s, 2, created_at=NOW - timedelta(days=60))
        _vote_n(s, 1, 3, when=NOW - timedelta(days=2), prefix="recent")
        _vote_n(s, 2, 5, when=NOW - timedelta(days=20), prefix="old")

        trending = rank(s, 1, "trending", Identity.anonymous("viewer"), as_of=NOW)
        assert [r.suggestion.id for r in trending] == [1, 2]
        assert [r.recent_votes for r in trending] == [3, 0]

        top = rank(s, 1, "top", Identity.anonymous("viewer"))
        assert [r.suggestion.id for r in top] == [2, 1]


def test_trending_window_is_configurable_and_zero_recent_still_listed(app):
    with session_scope(app) as s:
        _suggestion(s, 1, created_at=NOW - timedelta(days=60))
        _suggestion(s, 2, created_at=NOW - timedelta(days=1))
        _vote_n(s, 1, 2, when=NOW - timedelta(days=20), prefix="v")

        default_window = rank(s, 1, "trending", Identity.anonymous("viewer"), as_of=NOW)
        # No recent votes anywhere: newer suggestion first.
        assert [r.suggestion.id for r in default_window] == [2, 1]

        wide = rank(s, 1, "trending", Identity.anonymous("viewer"), as_of=NOW, window_days=30)
        assert [r.suggestion.id for r in wide] == [1, 2]


def test_has_voted_flags_follow_the_caller(app):
    with session_scope(app) as s:
        _suggestion(s, 1, created_at=NOW - timedelta(days=2))
        _suggestion(s, 2, created_at=NOW - timedelta(days=1))
        toggle_vote(s, Identity.account(1), 1)

        mine = {r.suggestion.id: r.has_voted for r in rank(s, 1, "new", Identity.account(1))}
        theirs = {r.suggestion.id: r.has_voted for r in rank(s, 1, "new", Identity.anonymous("someone"))}
        assert mine == {1: True, 2: False}
        assert theirs == {1: False, 2: False}


def test_status_and_category_filters(app):
    with session_scope(app) as s:
        _suggestion(s, 1, created_at=NOW, status="completed", category="bug")
        _suggestion(s, 2, created_at=NOW, status="pending", category="bug")
        _suggestion(s, 3, created_at=NOW, status="pending", category="feature")
        ident = Identity.anonymous("viewer")
        assert [r.suggestion.id for r in rank(s, 1, "new", ident, status="pending")] == [3, 2]
        assert [r.suggestion.id for r in rank(s, 1, "new", ident, category="BUG")] == [2, 1]


def test_unknown_mode_raises_value_error(app):
    with session_scope(app) as s:
        with pytest.raises(ValueError):
            rank(s, 1, "hot", Identity.anonymous("viewer"))


def test_to_dict_shape(app):
    with session_scope(app) as s:
        _suggestion(s, 1, created_at=NOW, category="feature")
        toggle_vote(s, Identity.anonymous("viewer"), 1)
        (ranked,) = rank(s, 1, "top", Identity.anonymous("viewer"))
        data = ranked.to_dict()
        assert data["hasVoted"] is True
        assert data["suggestion"]["voteCount"] == 1
        assert data["suggestion"]["boardId"] == 1
        assert "recentVotes" not in data
