import pytest
from werkzeug.security import generate_password_hash

from app.feedback import create_app
from app.feedback.db import session_scope
from app.feedback.models import Base, User


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        s.add(User(username="admin", email="admin@example.com", password_hash=generate_password_hash("pw1234"), is_active=True))

    return app.test_client()


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True

    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_unknown_page_is_404(client):
    r = client.get("/nope")
    assert r.status_code == 404


def test_login_and_manage_access(client):
    # Anonymous should be sent to login
    r = client.get("/manage/boards/")
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]

    r = client.post("/auth/login", data={"email": "admin@example.com", "password": "pw1234"}, follow_redirects=False)
    assert r.status_code == 302

    r = client.get("/manage/boards/")
    assert r.status_code == 200


def test_inactive_user_cannot_log_in(client):
    with session_scope(client.application) as s:
        s.query(User).filter(User.email == "admin@example.com").one().is_active = False

    client.post("/auth/login", data={"email": "admin@example.com", "password": "pw1234"})
    r = client.get("/manage/boards/")
    assert r.status_code == 302
