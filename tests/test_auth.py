import re
from collections import defaultdict
from datetime import datetime, timedelta

import pytest
from sqlalchemy import select
from werkzeug.security import check_password_hash, generate_password_hash

from app.feedback import auth, create_app
from app.feedback.db import session_scope
from app.feedback.models import AuditEvent, Base, User

REGISTRATION = {
    "username": "newbie",
    "email": "New@Example.com",
    "first_name": "New",
    "last_name": "User",
    "password": "secret1",
    "confirm_password": "secret1",
}


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.delenv("SMTP_SERVER", raising=False)
    monkeypatch.setattr(auth, "_login_attempts", defaultdict(list))

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        s.add(User(id=1, username="owner", email="owner@example.com", password_hash=generate_password_hash("pw1234")))

    return app.test_client()


@pytest.fixture()
def outbox(monkeypatch):
    sent = []

    def fake_send_email(config, *, to, subject, body):
        sent.append({"to": to, "subject": subject, "body": body})
        return True

    monkeypatch.setattr(auth, "send_email", fake_send_email)
    return sent


def _actions(app) -> list[str]:
    with session_scope(app) as s:
        return list(s.execute(select(AuditEvent.action).order_by(AuditEvent.id)).scalars())


def test_register_then_login_with_username(client):
    r = client.post("/auth/register", data=REGISTRATION)
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/auth/login")

    with session_scope(client.application) as s:
        user = s.execute(select(User).where(User.username == "newbie")).scalar_one()
        assert user.email == "new@example.com"
        assert check_password_hash(user.password_hash, "secret1")

    r = client.post("/auth/login", data={"email": "NEWBIE", "password": "secret1"})
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/manage/boards/")
    assert "auth.register" in _actions(client.application)


def test_register_rejects_duplicates_and_bad_input(client):
    r = client.post("/auth/register", data={**REGISTRATION, "email": "OWNER@example.com"})
    assert r.status_code == 400
    assert b"email address already exists" in r.data

    r = client.post("/auth/register", data={**REGISTRATION, "username": "Owner"})
    assert r.status_code == 400
    assert b"username already exists" in r.data

    r = client.post("/auth/register", data={**REGISTRATION, "username": "x", "confirm_password": "other1"})
    assert r.status_code == 400
    assert b"Username must be" in r.data
    assert b"Passwords do not match" in r.data


def test_failed_login_is_audited_and_generic(client):
    r = client.post("/auth/login", data={"email": "owner@example.com", "password": "wrong"}, follow_redirects=True)
    assert b"Invalid email or password." in r.data
    assert _actions(client.application) == ["auth.login_failed"]


def test_login_rate_limit(client):
    for _ in range(5):
        client.post("/auth/login", data={"email": "owner@example.com", "password": "wrong"})
    r = client.post("/auth/login", data={"email": "owner@example.com", "password": "pw1234"}, follow_redirects=True)
    assert b"Too many login attempts" in r.data
    r = client.get("/manage/boards/")
    assert r.status_code == 302


def test_login_honours_local_next_only(client):
    r = client.post("/auth/login", data={"email": "owner@example.com", "password": "pw1234", "next": "/boards/1"})
    assert r.headers["Location"].endswith("/boards/1")
    client.get("/auth/logout")

    r = client.post("/auth/login", data={"email": "owner@example.com", "password": "pw1234", "next": "//evil.example"})
    assert "evil" not in r.headers["Location"]


def test_logout_clears_session(client):
    client.post("/auth/login", data={"email": "owner@example.com", "password": "pw1234"})
    assert client.get("/manage/boards/").status_code == 200
    r = client.get("/auth/logout")
    assert r.status_code == 302
    assert client.get("/manage/boards/").status_code == 302


def test_password_reset_flow(client, outbox):
    r = client.post("/auth/forgot-password", data={"email": "owner@example.com"}, follow_redirects=True)
    assert b"If an account exists" in r.data
    assert len(outbox) == 1
    assert outbox[0]["to"] == "owner@example.com"

    token = re.search(r"/auth/reset-password/(\S+)", outbox[0]["body"]).group(1)
    assert client.get(f"/auth/reset-password/{token}").status_code == 200

    r = client.post(
        f"/auth/reset-password/{token}",
        data={"password": "brand-new", "confirm_password": "mismatch"},
        follow_redirects=True,
    )
    assert b"Passwords do not match." in r.data

    r = client.post(f"/auth/reset-password/{token}", data={"password": "brand-new", "confirm_password": "brand-new"})
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/auth/login")

    with session_scope(client.application) as s:
        user = s.get(User, 1)
        assert check_password_hash(user.password_hash, "brand-new")
        assert user.reset_token_hash is None

    # Tokens are single-use.
    r = client.get(f"/auth/reset-password/{token}", follow_redirects=True)
    assert b"invalid or has expired" in r.data

    r = client.post("/auth/login", data={"email": "owner@example.com", "password": "brand-new"})
    assert r.status_code == 302
    assert "auth.password_reset" in _actions(client.application)


def test_forgot_password_unknown_email_sends_nothing(client, outbox):
    r = client.post("/auth/forgot-password", data={"email": "nobody@example.com"}, follow_redirects=True)
    assert b"If an account exists" in r.data
    assert outbox == []


def test_expired_reset_token_is_rejected(client, outbox):
    client.post("/auth/forgot-password", data={"email": "owner@example.com"})
    token = re.search(r"/auth/reset-password/(\S+)", outbox[0]["body"]).group(1)

    with session_scope(client.application) as s:
        s.get(User, 1).reset_token_expires_at = datetime.utcnow() - timedelta(minutes=1)

    r = client.post(
        f"/auth/reset-password/{token}",
        data={"password": "brand-new", "confirm_password": "brand-new"},
        follow_redirects=True,
    )
    assert b"invalid or has expired" in r.data
    with session_scope(client.application) as s:
        assert check_password_hash(s.get(User, 1).password_hash, "pw1234")
