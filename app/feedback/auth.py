from __future__ import annotations

import hashlib
import re
import secrets
import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, flash, g, redirect, render_template, request, session, url_for
from sqlalchemy import func, or_
from werkzeug.security import check_password_hash, generate_password_hash

from app.feedback.audit import record_event
from app.feedback.constants import PASSWORD_MIN
from app.feedback.db import db_session
from app.feedback.identity import resolve_identity
from app.feedback.mailer import MailError, send_email
from app.feedback.models import User
from app.feedback.security import ensure_visitor_id

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds
_USERNAME_RE = re.compile(r"^[A-Za-z0-9_.-]{3,64}$")


def _check_rate_limit(ip: str) -> bool:
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    _login_attempts[ip] = [t for t in _login_attempts[ip] if t > cutoff]
    return len(_login_attempts[ip]) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(datetime.utcnow())


def _hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _safe_next(nxt: str) -> str | None:
    # Only allow local paths to avoid open redirects.
    if nxt.startswith("/") and not nxt.startswith("//"):
        return nxt
    return None


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie and resolves g.identity.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.current_user = None
    g.identity = None
    if request.path.startswith(("/static/", "/health", "/healthz")):
        return

    visitor_id = ensure_visitor_id()
    user_id = session.get("user_id")
    if user_id:
        try:
            s = db_session()
            user = s.get(User, int(user_id))
            if not user or not user.is_active:
                session.pop("user_id", None)
            else:
                g.current_user = user
        except Exception as e:
            current_app.logger.error("load_current_user DB error (clearing session): %s", e)
            session.pop("user_id", None)

    g.identity = resolve_identity(g.current_user, visitor_id)


def validate_registration(form: dict) -> list[str]:
    errors = []
    username = (form.get("username") or "").strip()
    email = (form.get("email") or "").strip().lower()
    password = form.get("password") or ""
    confirm = form.get("confirm_password")

    if not _USERNAME_RE.match(username):
        errors.append("Username must be 3-64 characters (letters, digits, '.', '_' or '-').")
    if not email or "@" not in email:
        errors.append("A valid email address is required.")
    if not (form.get("first_name") or "").strip() or not (form.get("last_name") or "").strip():
        errors.append("First and last name are required.")
    if len(password) < PASSWORD_MIN:
        errors.append(f"Password must be at least {PASSWORD_MIN} characters.")
    elif confirm is not None and confirm != password:
        errors.append("Passwords do not match.")
    return errors


@bp.get("/register")
def register_get():
    return render_template("auth/register.html", form={})


@bp.post("/register")
def register_post():
    form = request.form
    errors = validate_registration(form)
    if errors:
        for err in errors:
            flash(err, "danger")
        return render_template("auth/register.html", form=form), 400

    s = db_session()
    username = form["username"].strip()
    email = form["email"].strip().lower()
    existing = s.query(User).filter(or_(User.email == email, func.lower(User.username) == username.lower())).first()
    if existing is not None:
        if existing.email == email:
            flash("A user with this email address already exists.", "danger")
        else:
            flash("A user with this username already exists.", "danger")
        return render_template("auth/register.html", form=form), 400

    user = User(
        username=username,
        email=email,
        first_name=form["first_name"].strip(),
        last_name=form["last_name"].strip(),
        password_hash=generate_password_hash(form["password"]),
        is_active=True,
    )
    s.add(user)
    s.flush()
    record_event(s, actor=user, action="auth.register", entity_type="User", entity_id=user.id)
    s.commit()
    flash("You have successfully registered. Please sign in.", "success")
    return redirect(url_for("auth.login_get"))


@bp.get("/login")
def login_get():
    nxt = (request.args.get("next") or "").strip()
    return render_template("auth/login.html", next=nxt)


@bp.post("/login")
def login_post():
    login = (request.form.get("email") or "").strip().lower()
    password = request.form.get("password") or ""
    nxt = (request.form.get("next") or "").strip()
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        flash("Too many login attempts. Please wait 5 minutes.", "danger")
        return redirect(url_for("auth.login_get"))

    _record_attempt(ip)

    try:
        s = db_session()
        user = s.query(User).filter(or_(User.email == login, func.lower(User.username) == login)).one_or_none()
        if not user or not user.is_active or not check_password_hash(user.password_hash, password):
            record_event(
                s,
                actor=None,
                action="auth.login_failed",
                entity_type="User",
                entity_id=login,
                reason="Invalid credentials",
                metadata={"login": login},
            )
            s.commit()
            flash("Invalid email or password.", "danger")
            return redirect(url_for("auth.login_get"))

        session["user_id"] = user.id
        _login_attempts[ip].clear()
        record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=user.id)
        s.commit()
        return redirect(_safe_next(nxt) or url_for("boards_admin.list_boards"))
    except Exception:
        current_app.logger.exception("Login POST crashed (login=%s request_id=%s)", login, getattr(g, "request_id", None))
        raise


@bp.get("/logout")
def logout():
    s = db_session()
    user = getattr(g, "current_user", None)
    if user:
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=user.id)
        s.commit()
    session.pop("user_id", None)
    flash("You have successfully logged out.", "success")
    return redirect(url_for("routes.index"))


# ---------- Password reset ----------
@bp.get("/forgot-password")
def forgot_password_get():
    return render_template("auth/forgot_password.html")


@bp.post("/forgot-password")
def forgot_password_post():
    email = (request.form.get("email") or "").strip().lower()
    # Same response whether or not the account exists.
    generic = "If an account exists for that email, a reset link has been sent."

    s = db_session()
    user = s.query(User).filter(User.email == email).one_or_none()
    if user is None or not user.is_active:
        flash(generic, "info")
        return redirect(url_for("auth.login_get"))

    token = secrets.token_urlsafe(32)
    ttl = int(current_app.config.get("PASSWORD_RESET_TTL_MINUTES") or 60)
    user.reset_token_hash = _hash_reset_token(token)
    user.reset_token_expires_at = datetime.utcnow() + timedelta(minutes=ttl)
    record_event(s, actor=user, action="auth.reset_requested", entity_type="User", entity_id=user.id)
    s.commit()

    link = url_for("auth.reset_password_get", token=token, _external=True)
    try:
        send_email(
            current_app.config,
            to=user.email,
            subject="Password reset",
            body=(
                f"Hello {user.display_name},\n\n"
                f"Use the link below to choose a new password. It expires in {ttl} minutes.\n\n{link}\n\n"
                "If you did not ask for this, you can ignore this email.\n"
            ),
        )
    except MailError as e:
        current_app.logger.error("Password reset email failed user_id=%s: %s", user.id, e)
        flash("We could not send the reset email. Please try again later.", "danger")
        return redirect(url_for("auth.forgot_password_get"))

    flash(generic, "info")
    return redirect(url_for("auth.login_get"))


def _user_for_reset_token(s, token: str) -> User | None:
    user = s.query(User).filter(User.reset_token_hash == _hash_reset_token(token)).one_or_none()
    if user is None or not user.is_active:
        return None
    if user.reset_token_expires_at is None or user.reset_token_expires_at < datetime.utcnow():
        return None
    return user


@bp.get("/reset-password/<token>")
def reset_password_get(token: str):
    s = db_session()
    if _user_for_reset_token(s, token) is None:
        flash("Password reset link is invalid or has expired.", "danger")
        return redirect(url_for("auth.forgot_password_get"))
    return render_template("auth/reset_password.html", token=token)


@bp.post("/reset-password/<token>")
def reset_password_post(token: str):
    s = db_session()
    user = _user_for_reset_token(s, token)
    if user is None:
        flash("Password reset link is invalid or has expired.", "danger")
        return redirect(url_for("auth.forgot_password_get"))

    password = request.form.get("password") or ""
    confirm = request.form.get("confirm_password") or ""
    if len(password) < PASSWORD_MIN:
        flash(f"Password must be at least {PASSWORD_MIN} characters.", "danger")
        return redirect(url_for("auth.reset_password_get", token=token))
    if password != confirm:
        flash("Passwords do not match.", "danger")
        return redirect(url_for("auth.reset_password_get", token=token))

    user.password_hash = generate_password_hash(password)
    user.reset_token_hash = None
    user.reset_token_expires_at = None
    record_event(s, actor=user, action="auth.password_reset", entity_type="User", entity_id=user.id)
    s.commit()
    flash("Your password has been reset. Please sign in.", "success")
    return redirect(url_for("auth.login_get"))
