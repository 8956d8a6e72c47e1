import pytest
from sqlalchemy import select, update
from werkzeug.security import generate_password_hash

from app.feedback import create_app
from app.feedback.db import session_scope
from app.feedback.identity import Identity
from app.feedback.models import AuditEvent, Base, User
from app.feedback.modules.boards.models import Board
from app.feedback.modules.suggestions.models import Suggestion
from app.feedback.modules.suggestions.service import current_count, recount_votes
from app.feedback.modules.voting.service import toggle_vote
from scripts import recount_votes as recount_script


@pytest.fixture()
def app(tmp_path, monkeypatch):
    db_url = f"sqlite:///{tmp_path/'test.db'}"
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", db_url)
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        s.add(User(id=1, username="owner", email="owner@example.com", password_hash=generate_password_hash("pw1234")))
        s.flush()
        s.add_all(
            [
                Board(id=1, owner_user_id=1, name="One", description="d"),
                Board(id=2, owner_user_id=1, name="Two", description="d"),
            ]
        )
        s.flush()
        s.add_all(
            [
                Suggestion(id=1, board_id=1, title="A", description="x"),
                Suggestion(id=2, board_id=1, title="B", description="x"),
                Suggestion(id=3, board_id=2, title="C", description="x"),
            ]
        )
        s.flush()
        for sid in (1, 2, 3):
            toggle_vote(s, Identity.anonymous("sess-A"), sid)
            toggle_vote(s, Identity.account(1), sid)

    app.config["TEST_DATABASE_URL"] = db_url
    return app


def _drift(app, counts: dict[int, int]) -> None:
    with session_scope(app) as s:
        for sid, value in counts.items():
            s.execute(update(Suggestion).where(Suggestion.id == sid).values(vote_count=value))


def _counts(app) -> dict[int, int]:
    with session_scope(app) as s:
        return {sid: current_count(s, sid) for sid in (1, 2, 3)}


def test_recount_repairs_only_drifted_counters(app):
    _drift(app, {1: 7, 3: 0})
    with session_scope(app) as s:
        assert recount_votes(s) == [(1, 7, 2), (3, 0, 2)]
    assert _counts(app) == {1: 2, 2: 2, 3: 2}

    with session_scope(app) as s:
        assert recount_votes(s) == []


def test_recount_scoped_to_board_or_suggestion(app):
    _drift(app, {1: 9, 2: 9, 3: 9})
    with session_scope(app) as s:
        assert recount_votes(s, suggestion_id=2) == [(2, 9, 2)]
    assert _counts(app) == {1: 9, 2: 2, 3: 9}

    with session_scope(app) as s:
        assert recount_votes(s, board_id=2) == [(3, 9, 2)]
    assert _counts(app) == {1: 9, 2: 2, 3: 2}


def test_dry_run_reports_without_writing(app):
    _drift(app, {2: 5})
    with session_scope(app) as s:
        assert recount_votes(s, dry_run=True) == [(2, 5, 2)]
    assert _counts(app)[2] == 5


def test_script_run_fixes_and_audits(app):
    db_url = app.config["TEST_DATABASE_URL"]
    _drift(app, {1: 4})

    assert recount_script.run(board_id=1, suggestion_id=None, dry_run=True, database_url=db_url) == [(1, 4, 2)]
    assert _counts(app)[1] == 4

    assert recount_script.run(board_id=1, suggestion_id=None, dry_run=False, database_url=db_url) == [(1, 4, 2)]
    assert _counts(app)[1] == 2

    with session_scope(app) as s:
        event = s.execute(select(AuditEvent).where(AuditEvent.action == "suggestion.recount")).scalar_one()
        assert event.entity_type == "Board"
        assert '"stored": 4' in event.metadata_json


def test_script_main_requires_a_scope(app, capsys):
    with pytest.raises(SystemExit):
        recount_script.main([])

    _drift(app, {3: 1})
    assert recount_script.main(["--all"]) == 0
    out = capsys.readouterr().out
    assert "suggestion=3 stored=1 live=2" in out
    assert "1 counter(s) fixed." in out
