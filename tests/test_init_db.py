import pytest
from sqlalchemy import func, select
from werkzeug.security import check_password_hash

from app.feedback.db import make_engine
from app.feedback.models import Base, User
from app.feedback.modules.boards.models import Board
from app.feedback.modules.suggestions.models import Suggestion
from scripts import init_db
from scripts._db_utils import script_session


@pytest.fixture()
def db_url(tmp_path, monkeypatch):
    url = f"sqlite:///{tmp_path/'seed.db'}"
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("ADMIN_EMAIL", "Boss@Example.com")
    monkeypatch.setenv("ADMIN_USERNAME", "boss")
    monkeypatch.setenv("ADMIN_PASSWORD", "seed-pass")
    monkeypatch.delenv("SEED_DEMO_BOARD", raising=False)

    engine = make_engine(url)
    Base.metadata.create_all(bind=engine)
    engine.dispose()
    return url


def _totals(url) -> tuple[int, int, int]:
    with script_session(url) as s:
        return (
            s.execute(select(func.count(User.id))).scalar_one(),
            s.execute(select(func.count(Board.id))).scalar_one(),
            s.execute(select(func.count(Suggestion.id))).scalar_one(),
        )


def test_seed_creates_owner_and_demo_board_once(db_url):
    init_db.seed_only(database_url=db_url)
    assert _totals(db_url) == (1, 1, 2)

    with script_session(db_url) as s:
        owner = s.execute(select(User)).scalar_one()
        assert owner.email == "boss@example.com"
        assert check_password_hash(owner.password_hash, "seed-pass")
        board = s.execute(select(Board)).scalar_one()
        assert board.owner_user_id == owner.id
        assert board.roadmap_enabled is True

    init_db.seed_only(database_url=db_url)
    assert _totals(db_url) == (1, 1, 2)


def test_seed_keeps_existing_password_and_can_skip_demo(db_url, monkeypatch):
    monkeypatch.setenv("SEED_DEMO_BOARD", "0")
    init_db.seed_only(database_url=db_url)
    assert _totals(db_url) == (1, 0, 0)

    monkeypatch.setenv("ADMIN_PASSWORD", "other-pass")
    init_db.seed_only(database_url=db_url)
    with script_session(db_url) as s:
        owner = s.execute(select(User)).scalar_one()
        assert check_password_hash(owner.password_hash, "seed-pass")


def test_release_migrates_then_seeds(tmp_path, monkeypatch):
    from scripts import release

    url = f"sqlite:///{tmp_path/'release.db'}"
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DATABASE_URL", url)
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("ADMIN_EMAIL", "boss@example.com")
    monkeypatch.setenv("ADMIN_PASSWORD", "seed-pass")

    release.run_release()
    assert _totals(url) == (1, 1, 2)

    # Second release is a no-op for both migrations and seed.
    release.run_release()
    assert _totals(url) == (1, 1, 2)


def test_release_refuses_sqlite_in_production(monkeypatch):
    from scripts import release

    monkeypatch.setenv("DATABASE_URL", "sqlite:///prod.db")
    monkeypatch.setenv("ENV", "production")
    with pytest.raises(RuntimeError, match="sqlite"):
        release.run_release()
